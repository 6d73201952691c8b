"""Host inventory, jobs and playbook steps run over caller-supplied SSH sessions."""

__version__ = "0.1.0"