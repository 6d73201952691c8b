import io
import posixpath
import tarfile
import zipfile
from types import SimpleNamespace

import pytest

from opsmgr.steps.files import (
    FileUploadStep,
    MultiFileUploadStep,
    ZipFileStep,
    file_ext,
)

GUID = "00000000-0000-0000-0000-000000000000"


class _RemoteWriter(io.BytesIO):
    def __init__(self, store, path):
        super().__init__()
        self._store = store
        self._path = path

    def close(self):
        if not self.closed:
            self._store[self._path] = self.getvalue()
        super().close()


class FakeClient:
    def __init__(self, files=None, dirs=()):
        self.files = dict(files or {})
        self.dirs = set(dirs)
        self.uploads = []
        self.removed = []
        self.removed_dirs = []
        self.sftp_opened = 0

    def new_sftp_client(self):
        self.sftp_opened += 1

    def path_exists(self, path):
        return path in self.files or path in self.dirs

    def is_dir(self, path):
        return path in self.dirs

    def mkdir_all(self, path):
        while path not in ("", "/", "."):
            self.dirs.add(path)
            path = posixpath.dirname(path)

    def remove(self, path):
        self.removed.append(path)

    def remove_dir(self, path):
        self.removed_dirs.append(path)

    def upload_file(self, local, remote, name):
        self.uploads.append((local, remote, name))

    def open_file(self, path, mode):
        if "w" in mode:
            return _RemoteWriter(self.files, path)
        return io.BytesIO(self.files[path])


def _session(client):
    return SimpleNamespace(client=client)


def test_upload_strips_guid_and_reports_remote(tmp_path):
    local = tmp_path / f"{GUID}app.conf"
    local.write_bytes(b"data")
    step = FileUploadStep().create(
        f'{{"file": "{local.as_posix()}", "options": "upload", "remote": "/etc/app"}}'
    )
    client = FakeClient()
    out = step.execute(_session(client), False)
    assert out == "上传成功, 远端路径: /etc/app\r\n".encode("utf-8")
    assert client.uploads == [(local.as_posix(), "/etc/app", "app.conf")]
    assert client.sftp_opened == 1


def test_upload_missing_local_file(tmp_path):
    missing = (tmp_path / "gone").as_posix()
    step = FileUploadStep().create(
        f'{{"file": "{missing}", "options": "upload", "remote": "/x"}}'
    )
    with pytest.raises(FileNotFoundError):
        step.execute(_session(FakeClient()), False)


def test_remove_directory():
    step = FileUploadStep().create('{"options": "remove", "remote": "/srv/old"}')
    client = FakeClient(dirs={"/srv/old"})
    assert step.execute(_session(client), True) == "删除成功!".encode("utf-8")
    assert client.removed_dirs == ["/srv/old"]
    assert client.removed == []


def test_remove_file():
    step = FileUploadStep().create('{"options": "remove", "remote": "/srv/a.txt"}')
    client = FakeClient(files={"/srv/a.txt": b""})
    assert step.execute(_session(client), False) == "删除成功!".encode("utf-8")
    assert client.removed == ["/srv/a.txt"]


def test_unknown_option():
    step = FileUploadStep().create('{"options": "move", "remote": "/srv"}')
    with pytest.raises(ValueError, match="do not support options"):
        step.execute(_session(FakeClient()), False)


def test_create_rejects_bad_json():
    with pytest.raises(ValueError):
        FileUploadStep().create("{not json")


def test_file_upload_schema():
    schema = FileUploadStep().get_schema()
    assert schema["required"] == ["options", "remote"]
    assert schema["properties"]["options"]["enum"] == ["upload", "remove"]
    assert FileUploadStep().name() == "file"


def test_multi_upload_counts_every_file(tmp_path):
    long_name = tmp_path / f"{GUID}a.sh"
    short_name = tmp_path / "b.sh"
    step = MultiFileUploadStep().create(
        {"files": [long_name.as_posix(), short_name.as_posix()], "remote_dir": "/opt"}.__repr__()
        .replace("'", '"')
    )
    client = FakeClient()
    out = step.execute(_session(client), False)
    assert client.uploads == [(long_name.as_posix(), "/opt/a.sh", "a.sh")]
    assert out == "上传成功, 远端路径: /opt, 共上传文件2个\r\n".encode("utf-8")


def test_multi_upload_rejects_non_list():
    with pytest.raises(ValueError):
        MultiFileUploadStep().create('{"files": "x", "remote_dir": "/opt"}')


@pytest.mark.parametrize(
    "path, expected",
    [("a/b.tar.gz", "tar.gz"), ("b.tar", "tar"), ("c.zip", "zip"), ("noext", "")],
)
def test_file_ext(path, expected):
    assert file_ext(path) == expected


def _add(archive, name, data):
    info = tarfile.TarInfo(name)
    info.size = len(data)
    archive.addfile(info, io.BytesIO(data))


@pytest.mark.parametrize("suffix, mode", [(".tar.gz", "w:gz"), (".tar", "w")])
def test_untar_into_remote(tmp_path, suffix, mode):
    archive_path = tmp_path / f"bundle{suffix}"
    with tarfile.open(archive_path, mode) as archive:
        _add(archive, "conf/app.yml", b"key: value\n")
        _add(archive, "run.sh", b"echo hi\n")
    step = ZipFileStep().create(f'{{"file": "{archive_path.as_posix()}", "remote": "/srv"}}')
    client = FakeClient()
    out = step.execute(_session(client), False)
    assert out == "解压成功, 远端路径: /srv\r\n".encode("utf-8")
    assert client.files["/srv/conf/app.yml"] == b"key: value\n"
    assert client.files["/srv/run.sh"] == b"echo hi\n"
    assert "/srv/conf" in client.dirs


def test_unzip_into_remote(tmp_path):
    archive_path = tmp_path / "bundle.zip"
    with zipfile.ZipFile(archive_path, "w") as archive:
        archive.writestr("docs/", b"")
        archive.writestr("docs/readme.txt", b"hello")
    step = ZipFileStep().create(f'{{"file": "{archive_path.as_posix()}", "remote": "/data"}}')
    client = FakeClient()
    step.execute(_session(client), False)
    assert client.files["/data/docs/readme.txt"] == b"hello"
    assert "/data/docs" in client.dirs


def test_zip_missing_archive(tmp_path):
    missing = (tmp_path / "none.zip").as_posix()
    step = ZipFileStep().create(f'{{"file": "{missing}", "remote": "/data"}}')
    with pytest.raises(FileNotFoundError):
        step.execute(_session(FakeClient()), False)