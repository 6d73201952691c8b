"""Built-in playbook steps: commands, shell scripts, files, archives and JSON/YAML edits."""