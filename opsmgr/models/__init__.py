"""SQLite records for hosts, groups, tags, keys, tunnels, commands, jobs and playbooks."""