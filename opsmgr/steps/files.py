"""Built-in steps that upload, remove and unpack files on a remote host."""

from __future__ import annotations

import posixpath
import shutil
import tarfile
import zipfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import IO, Any, Protocol

from opsmgr.steps.base import (
    GUID_LENGTH,
    STEP_NAME_FILE,
    STEP_NAME_MULTI_FILE,
    STEP_NAME_ZIP_FILE,
    Step,
)

OPTION_UPLOAD = "upload"
OPTION_REMOVE = "remove"


class RemoteClient(Protocol):
    """The file operations a client offers over its SFTP channel."""

    def new_sftp_client(self) -> None: ...

    def path_exists(self, path: str) -> bool: ...

    def is_dir(self, path: str) -> bool: ...

    def mkdir_all(self, path: str) -> None: ...

    def remove(self, path: str) -> None: ...

    def remove_dir(self, path: str) -> None: ...

    def upload_file(self, local: str, remote: str, name: str) -> None: ...

    def open_file(self, path: str, mode: str) -> IO[bytes]: ...


def file_ext(path: str) -> str:
    """The extension of ``path`` without its dot; ``tar.gz`` counts as one extension."""
    name = posixpath.basename(path.replace("\\", "/")).lower()
    if name.endswith(".tar.gz"):
        return "tar.gz"
    _, dot, ext = name.rpartition(".")
    return ext if dot else ""


def _strip_guid(name: str) -> str:
    """Uploaded cache files carry a GUID prefix; return the original name."""
    return name[GUID_LENGTH:] if len(name) > GUID_LENGTH else name


def _remote_join(base: str, name: str) -> str:
    return posixpath.normpath(posixpath.join(base, name))


@dataclass
class FileUploadConfig:
    file: str = field(default="", metadata={"schema": {"type": "string", "format": "data-url"}})
    options: str = field(
        default="",
        metadata={
            "schema": {"type": "string", "enum": [OPTION_UPLOAD, OPTION_REMOVE]},
            "required": True,
            "description": "upload: 上传到远端 remove: 删除远端文件或者目录",
        },
    )
    remote: str = field(
        default="", metadata={"required": True, "description": "远程文件路径"}
    )


class FileUploadStep(Step):
    """Upload a cached file to the host, or remove a remote file or directory."""

    step_name = STEP_NAME_FILE
    description = "文件操作"
    config_type = FileUploadConfig

    def execute(self, session: Any, sudo: bool) -> bytes:
        cfg = self._require_config()
        client: RemoteClient = session.client
        client.new_sftp_client()

        if cfg.options == OPTION_UPLOAD:
            if not Path(cfg.file).exists():
                raise FileNotFoundError(f"本地缓存不存在: {cfg.file}")
            name = _strip_guid(Path(cfg.file).name)
            client.upload_file(cfg.file, cfg.remote, name)
            return f"上传成功, 远端路径: {cfg.remote}\r\n".encode("utf-8")

        if cfg.options == OPTION_REMOVE:
            if client.is_dir(cfg.remote):
                client.remove_dir(cfg.remote)
            else:
                client.remove(cfg.remote)
            return "删除成功!".encode("utf-8")

        raise ValueError("do not support options")


@dataclass
class MultiFileUploadConfig:
    files: list[str] = field(
        default_factory=list,
        metadata={
            "schema": {"type": "array", "items": {"type": "string"}, "format": "data-url"},
            "required": True,
        },
    )
    remote_dir: str = field(
        default="", metadata={"required": True, "description": "远程文件夹路径"}
    )


class MultiFileUploadStep(Step):
    """Upload several cached files into one remote directory."""

    step_name = STEP_NAME_MULTI_FILE
    description = "上传多个文件"
    config_type = MultiFileUploadConfig

    def execute(self, session: Any, sudo: bool) -> bytes:
        cfg = self._require_config()
        client: RemoteClient = session.client
        client.new_sftp_client()

        for local in cfg.files:
            base = Path(local).name
            if len(base) > GUID_LENGTH:
                name = base[GUID_LENGTH:]
                client.upload_file(local, posixpath.join(cfg.remote_dir, name), name)
        total = len(cfg.files)
        return f"上传成功, 远端路径: {cfg.remote_dir}, 共上传文件{total}个\r\n".encode("utf-8")


@dataclass
class ZipFileConfig:
    file: str = field(
        default="",
        metadata={
            "schema": {"type": "string", "format": "data-url"},
            "description": "*.tar | *.tar.gz | *.zip",
        },
    )
    remote: str = field(
        default="", metadata={"required": True, "description": "解压到远端文件夹"}
    )


class ZipFileStep(Step):
    """Unpack a local tar, tar.gz or zip archive into a remote directory."""

    step_name = STEP_NAME_ZIP_FILE
    description = "解压缩文件"
    config_type = ZipFileConfig

    def execute(self, session: Any, sudo: bool) -> bytes:
        cfg = self._require_config()
        client: RemoteClient = session.client
        client.new_sftp_client()
        ext = file_ext(cfg.file)

        if not Path(cfg.file).exists():
            raise FileNotFoundError(f"local archive not found: {cfg.file}")
        if not client.path_exists(cfg.remote):
            client.mkdir_all(cfg.remote)

        if ext == "tar":
            self._untar(client, cfg.file, cfg.remote, compressed=False)
        elif ext == "tar.gz":
            self._untar(client, cfg.file, cfg.remote, compressed=True)
        elif ext == "zip":
            self._unzip(client, cfg.file, cfg.remote)

        return f"解压成功, 远端路径: {cfg.remote}\r\n".encode("utf-8")

    @staticmethod
    def _untar(client: RemoteClient, archive_path: str, remote: str, compressed: bool) -> None:
        with tarfile.open(archive_path, "r:gz" if compressed else "r:") as archive:
            for member in archive:
                target = _remote_join(remote, member.name)
                if member.isdir():
                    if not client.path_exists(target):
                        client.mkdir_all(target)
                elif member.isreg():
                    parent = posixpath.dirname(target)
                    if not client.path_exists(parent):
                        client.mkdir_all(parent)
                    source = archive.extractfile(member)
                    if source is None:
                        continue
                    with source, client.open_file(target, "wb") as out:
                        shutil.copyfileobj(source, out)

    @staticmethod
    def _unzip(client: RemoteClient, archive_path: str, remote: str) -> None:
        with zipfile.ZipFile(archive_path) as archive:
            for info in archive.infolist():
                target = _remote_join(remote, info.filename)
                if info.is_dir():
                    client.mkdir_all(target)
                    continue
                client.mkdir_all(posixpath.dirname(target))
                with archive.open(info) as source, client.open_file(target, "wb") as out:
                    shutil.copyfileobj(source, out)