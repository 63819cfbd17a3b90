# pcsrequester

HTTP request helpers built on `requests`. The package contains:

- `pcsrequester.client.HTTPClient`: a session that keeps cookies, a browser user
  agent, proxy settings and TLS settings. Certificate checks are off until you call
  `https_secure(True)`. The module also has the shortcuts `http_get`, `req` and
  `fetch`, which use a shared default client.
- `pcsrequester.downloader.downloader.Downloader`: a multi-connection downloader.
  It splits a file into byte ranges and spreads them over mirror servers. It can
  save its progress to a file so that an interrupted download can continue.
- `pcsrequester.uploader.uploader.Uploader`: uploads a reader's contents in a
  single POST request.
- `pcsrequester.uploader.multiupload.MultiUploader`: uploads a file as blocks in
  parallel, and can resume from saved state.
- `pcsrequester.multipart.MultipartReader`: builds a streaming
  multipart/form-data body, so the whole body is never held in memory.
- Smaller helpers:
  - `pcsrequester.rio` has `Buffer`, `FileReader`, `RandomReader` and `MultiReader`.
  - `pcsrequester.cookies.parse_cookie_str` parses a Cookie header.
  - `pcsrequester.dial` has address parsing, proxy selection and a cached TCP `dial`.
  - `pcsrequester.tcpcache.TCPAddrCache` caches resolved addresses.
  - `pcsrequester.cachepool` provides buffer pools.
  - `pcsrequester.speeds.Speeds` measures throughput.

## Installation

```
pip install .
```

To install the test dependencies as well:

```
pip install .[test]
```

## Requests

```python
from pcsrequester.client import HTTPClient

client = HTTPClient()
client.proxy("127.0.0.1:8080")
body = client.fetch("GET", "https://example.com/", None, {"Accept": "text/html"})
```

`req` takes the same arguments as `fetch`. It returns the `requests.Response`
with its body not yet read.

The `post` argument can take any of these:

- a mapping, which is sent form-encoded with its keys sorted
- a `str` or `bytes` body
- a readable object

For a readable object, its `__len__` (or a `content_length()` method) sets the
Content-Length. If the object has a `content_type()` method, that sets the
Content-Type. An unsupported `post` type raises `TypeError`.

A proxy given as a bare `host:port` is treated as an HTTP proxy. If the proxy is
empty or invalid, the client falls back to the `*_PROXY` environment variables.
`set_global_proxy` in `pcsrequester.dial` sets the proxy used by clients that have
no proxy of their own.

## Downloading

The downloader writes through any object that has a `write_at(data, offset)`
method. `pcsrequester.rio.Buffer` is one such object. For a file, a small
adapter is enough:

```python
from pcsrequester.downloader.config import Config
from pcsrequester.downloader.downloader import Downloader


class FileWriter:
    def __init__(self, fh):
        self.fh = fh

    def write_at(self, data, offset):
        self.fh.seek(offset)
        return self.fh.write(data)


config = Config(max_parallel=8, instance_state_path="file.bin.state")

with open("file.bin", "wb") as out:
    downloader = Downloader("https://example.com/file.bin", FileWriter(out), config)
    downloader.add_load_balance_server("https://mirror.example.com/file.bin")
    downloader.execute()
```

How `execute()` handles the download:

- It raises `DownloadError` when the first response is a 4xx or 5xx status.
- It raises the monitor's error when a worker hits a fatal write error.
- If the server gives no Content-Length, the download runs over a single connection.
- A mirror is used only when it reports the same Content-Length, Content-MD5,
  Content-Type and `x-bs-meta-crc32` headers as the main URL.
- Progress is saved as JSON at `instance_state_path`. The file is removed when
  the download succeeds.

While `execute()` runs, you can call these from another thread:

- `status_updates()`, which yields the `DownloadStatus` once per `status_interval`
  seconds
- `pause()`, which works for ranged downloads only
- `resume()`
- `cancel()`
- `print_all_workers()`

You can also set callbacks through these attributes: `on_execute`, `on_success`,
`on_finish`, `on_pause`, `on_resume` and `on_cancel`.

## Uploading in blocks

Subclass `MultiUpload` and implement its three methods:

- `precreate()` prepares the upload.
- `tmp_file(cancel_event, partseq, part_offset, reader)` uploads one part and
  returns its checksum. If it raises `MultiError` with `terminated=True`, the
  whole upload stops. Any other error makes the part be retried.
- `create_super_file(*checksums)` joins the parts. It receives the checksums in
  block order.

Then run the upload:

```python
import json

from pcsrequester.rio import FileReader
from pcsrequester.uploader.multiupload import MultiUploader

with open("big.iso", "rb") as fh:
    uploader = MultiUploader(MyUpload(), FileReader(fh))
    uploader.block_size = 64 * 1024 * 1024
    uploader.parallel = 4
    uploader.execute()
    saved = json.dumps(uploader.instance_state().to_dict())
```

The defaults are 10 parallel parts and 1 GiB blocks.

To resume an upload, set `uploader.resume_state` to
`InstanceState.from_dict(...)` before calling `execute()`. Blocks that already
have a checksum are not sent again.

The outcome is reported through these callbacks: `on_success`, `on_error`,
`on_cancel` and `on_finish`. It is also left in `uploader.err`.

While the upload runs, two generators report on it:

- `status_updates()` yields `UploadStatus` snapshots.
- `instance_state_updates()` yields fresh resume state each time a part finishes.

## Multipart bodies

```python
from pcsrequester.client import HTTPClient
from pcsrequester.multipart import MultipartReader
from pcsrequester.rio import FileReader

with open("photo.jpg", "rb") as fh:
    body = MultipartReader()
    body.add_form_file("file", "photo.jpg", FileReader(fh))
    body.close_multipart()
    HTTPClient().fetch("POST", "https://example.com/upload", body)
```

Each part needs a reader that has both `read()` and `__len__()`. The fields come
first, then the files.

Calling `read()` before `close_multipart()` raises `MultipartStateError`.
Closing the reader twice raises it as well.

## What the package does not do

This is a library only. It has no command-line program. It does not talk to any
particular storage service: the calls that make up a block upload are yours to
supply through `MultiUpload`. Resume state for uploads is returned to you as a
dictionary. Storing it is up to you.

## Running the tests

```
pytest
```