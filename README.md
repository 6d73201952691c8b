# opsmgr

`opsmgr` is the data and execution layer for a small operations manager. It
keeps an inventory of hosts, groups, tags, private keys, tunnels, jobs, task
instances, command history and playbooks in SQLite, and runs playbook steps
through SSH sessions and clients that you supply.

## Installation

```
pip install .
```

To run the tests, install the `test` extra and run pytest:

```
pip install .[test]
pytest
```

## Storage

`opsmgr.models.database` provides `Database`, a thread-safe wrapper around a
SQLite file whose `transaction()` context manager commits on success and rolls
back on error, and `init_models`, which creates the data directory and opens
`oms.db` in it with the full schema. A lookup that finds no record raises
`RecordNotFound`. `paginate` returns the total count and one page of records,
newest first.

```python
from opsmgr.models.database import init_models
from opsmgr.models.tag import insert_tag
from opsmgr.models.group import insert_group, GroupMode
from opsmgr.models.host import insert_host, parse_host_list

db = init_models("", "oms", "", "", "sqlite", "/var/lib/opsmgr")

web = insert_tag(db, "web")
group = insert_group(db, "edge", "-G 10.0.*", GroupMode.OTHER)
host = insert_host(db, "node1", "root", "10.0.0.5", 22, "", 0, [web.id], 0, 5900)

print(parse_host_list(db, "group", group.id))
```

`parse_host_list` takes the kind `"host"`, `"tag"` or (anything else) a group.
A group in `GroupMode.HOST` holds its hosts directly. A group in
`GroupMode.OTHER` selects hosts through its `params`:

* `-G <glob>` matches addresses with `*` as a wildcard,
* `-L a,b,c` takes a comma-separated list of addresses,
* `-E <regex>` matches addresses with a regular expression,
* any other first word is treated as a glob.

The other model modules follow the same pattern of plain functions that take
the database first:

* `opsmgr.models.tag`, `opsmgr.models.group`, `opsmgr.models.private_key`,
* `opsmgr.models.host` (including `update_host_status` and `paginate_hosts`),
* `opsmgr.models.tunnel` (including `update_tunnel_status` and `refresh_tunnel`),
* `opsmgr.models.command`: `record_command` counts uses of a shell command and
  `search_command_history` lists the most used ones by prefix; quick commands
  are saved with `insert_quickly_command` and friends,
* `opsmgr.models.playbook`: `PlayBook` stores its steps as JSON and
  `parse_steps` decodes them into `Step` records; `delete_playbook` also
  removes the cached files its steps name,
* `opsmgr.models.job`: jobs and their `TaskInstance` runs.
  `TaskInstance.generate_log_path` gives `<dir>/<YYYYMMDD>/<uid>.log`, and
  `clear_instances` deletes instances that ended before a time together with
  older daily log folders under `<log_root>/<job id>-<job name>`.

## Job logs

`opsmgr.log_buffer.SyncBuffer` collects output from several threads and
flushes it to a binary file every 120 ms in a background thread.
`write_with_msg` writes a message and an output as one unit. Use it as a
context manager so that everything is written out and the file is closed when
the block ends.

## Playbooks and steps

Steps live in `opsmgr.steps`:

* `opsmgr.steps.base`: the `Step` base class, `RunCmdStep` (runs one command,
  with sudo when asked) and `RunShellStep` (runs a shell script from a
  temporary path under `.oms`),
* `opsmgr.steps.files`: `FileUploadStep` (upload a cached file, or remove a
  remote file or directory), `MultiFileUploadStep` and `ZipFileStep` (unpacks
  `.tar`, `.tar.gz` and `.zip` archives into a remote directory),
* `opsmgr.steps.text`: `JsonYamlReplaceStep`, which replaces the value at a
  path such as `$.server.ports[0]` in a remote JSON or YAML file. Its helpers
  are `parse_path` and `replace_at_path`.

A step instance without a configuration serves as the prototype of its type:
`create` builds a configured step from a JSON object and `get_schema` returns
the JSON schema of that object.

Steps run against objects you provide. A session offers `output`, `sudo`,
`run_script`, `close` and a `password` attribute; the file and text steps use
`session.client`, which offers `new_sftp_client`, `path_exists`, `is_dir`,
`mkdir_all`, `remove`, `remove_dir`, `upload_file` and `open_file`.

`opsmgr.player.Player` runs a list of steps in order. It opens a fresh session
for each step from a client offering `new_pty` and `new_session_with_pty`,
prefixes each step's output with a coloured header, and adds a failing step's
error text to the output before going on. If a session cannot be opened it
raises `PlayerError`, whose `output` holds what was collected. Setting the
`threading.Event` passed to `run` closes the running session and stops further
steps. A `WindowSize` sets the pseudo-terminal size.

Plugins can be described by a `manifest.yaml`, which `opsmgr.manifest.read_manifest`
loads into a `Manifest` holding `display_name` and `import_path`; it raises
`ManifestError` when the file cannot be read or decoded.

## What this package does not do

* It stores data in SQLite only; `init_models` rejects the `mysql` and
  `postgres` drivers.
* It contains no SSH or SFTP client: sessions and clients must be supplied.
* It has no scheduler, no tunnel manager, no web interface and no command-line
  program. Jobs and tunnels are stored and updated, but nothing here runs them
  on a schedule or opens the tunnels.
* It reads plugin manifests but does not load or run plugins.