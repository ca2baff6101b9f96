import hashlib
import os
import queue
import threading

from sympath.hashing import (
    compute_fingerprint,
    compute_hashes,
    hash_worker,
)
from sympath.progress import ScanProgress
from sympath.types import HashJob


def _write(path, data):
    path.write_bytes(data)
    st = os.stat(path)
    return st.st_size, st.st_mtime_ns


def test_compute_hashes_known_value(tmp_path):
    content = b"hello world\n"
    path = tmp_path / "test.txt"
    size, mtime = _write(path, content)

    r = compute_hashes(str(path), size, mtime)
    assert r.state == "ok", r.err
    assert r.sha256 == hashlib.sha256(content).hexdigest()
    assert r.fingerprint != ""
    assert len(r.fingerprint) == 64


def test_compute_hashes_zero_byte(tmp_path):
    path = tmp_path / "empty.txt"
    size, mtime = _write(path, b"")

    r = compute_hashes(str(path), size, mtime)
    assert r.state == "ok", r.err
    assert r.sha256 == hashlib.sha256(b"").hexdigest()


def test_compute_hashes_large_file(tmp_path):
    data = bytes(i % 251 for i in range(256 * 1024))
    path = tmp_path / "large.bin"
    size, mtime = _write(path, data)

    r = compute_hashes(str(path), size, mtime)
    assert r.state == "ok", r.err
    assert r.sha256 == hashlib.sha256(data).hexdigest()
    assert r.fingerprint != ""
    assert r.fingerprint != r.sha256
    assert r.fingerprint == compute_fingerprint(
        data[: 64 * 1024], data[-64 * 1024 :], len(data)
    )


def test_compute_hashes_vanished(tmp_path):
    r = compute_hashes(str(tmp_path / "gone.txt"), 100, 0)
    assert r.state == "vanished"
    assert r.err != ""


def test_compute_hashes_idempotent(tmp_path):
    path = tmp_path / "idem.txt"
    size, mtime = _write(path, b"deterministic content for idempotency test")

    r1 = compute_hashes(str(path), size, mtime)
    r2 = compute_hashes(str(path), size, mtime)
    assert r1.sha256 == r2.sha256
    assert r1.fingerprint == r2.fingerprint


def test_compute_hashes_unexpected_metadata_is_unstable(tmp_path):
    content = b"some content"
    path = tmp_path / "changed.txt"
    size, mtime = _write(path, content)

    r = compute_hashes(str(path), size + 1, mtime)
    assert r.state == "unstable"
    assert r.err == "file changed during read"
    assert r.sha256 == hashlib.sha256(content).hexdigest()


def test_compute_hashes_directory_is_error(tmp_path):
    r = compute_hashes(str(tmp_path), 0, 0)
    assert r.state == "error"


def test_compute_fingerprint_small_file():
    content = b"small file content"
    fp1 = compute_fingerprint(content, content, len(content))
    fp2 = compute_fingerprint(content, content, len(content))
    assert fp1 == fp2
    assert fp1 != ""


def test_compute_fingerprint_depends_on_size():
    content = b"abc"
    assert compute_fingerprint(content, content, 3) != compute_fingerprint(
        content, content, 4
    )


def test_hash_worker_processes_jobs_until_sentinel(tmp_path):
    jobs = queue.Queue()
    results = queue.Queue()
    progress = ScanProgress()
    expected = {}
    for name, data in {"a.txt": b"alpha", "b.txt": b"bravo"}.items():
        path = tmp_path / name
        size, mtime = _write(path, data)
        jobs.put(HashJob(str(path), name, size, mtime))
        expected[name] = hashlib.sha256(data).hexdigest()
    jobs.put(None)

    workers = [
        threading.Thread(target=hash_worker, args=(jobs, results, progress))
        for _ in range(2)
    ]
    for w in workers:
        w.start()
    for w in workers:
        w.join(timeout=10)

    assert not any(w.is_alive() for w in workers)
    got = {}
    while not results.empty():
        r = results.get()
        assert r.state == "ok"
        got[r.rel_path] = r.sha256
    assert got == expected
    assert progress.snapshot().files_hashed == 2


def test_hash_worker_stops_when_cancelled(tmp_path):
    path = tmp_path / "file.txt"
    size, mtime = _write(path, b"content")
    jobs = queue.Queue()
    jobs.put(HashJob(str(path), "file.txt", size, mtime))
    results = queue.Queue()
    cancel = threading.Event()
    cancel.set()

    hash_worker(jobs, results, None, cancel)

    assert results.empty()
    assert jobs.qsize() == 1