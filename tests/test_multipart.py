import io

import pytest

from pcsrequester.multipart import MultipartReader, MultipartStateError


class _Reader(io.BytesIO):
    def __len__(self):
        return len(self.getbuffer()) - self.tell()


def test_wire_format_single_field():
    mr = MultipartReader(boundary="xyz")
    mr.add_form_field("a", _Reader(b"1"))
    mr.close_multipart()
    assert mr.read() == b'--xyz\r\nContent-Disposition: form-data; name="a"\r\n\r\n1\r\n--xyz--\r\n'


def test_content_type():
    assert MultipartReader(boundary="xyz").content_type() == "multipart/form-data; boundary=xyz"


def test_default_boundary_is_hex():
    mr = MultipartReader()
    assert len(mr.boundary) == 60
    int(mr.boundary, 16)
    assert mr.content_type().endswith(mr.boundary)


def test_length_matches_body():
    mr = MultipartReader()
    mr.add_form_file("file", "data.bin", _Reader(b"payload" * 50))
    mr.add_form_field("name", _Reader(b"value"))
    mr.close_multipart()
    body = mr.read()
    assert len(body) == len(mr)


def test_fields_precede_files():
    mr = MultipartReader(boundary="b")
    mr.add_form_file("up", "f.txt", _Reader(b"FILEDATA"))
    mr.add_form_field("fld", _Reader(b"FIELDDATA"))
    mr.close_multipart()
    body = mr.read()
    assert body.index(b"FIELDDATA") < body.index(b"FILEDATA")
    assert b'filename="f.txt"' in body


def test_chunked_read_equals_full():
    def build():
        mr = MultipartReader(boundary="q")
        mr.add_form_field("x", _Reader(b"hello world"))
        mr.close_multipart()
        return mr

    full = build().read()
    chunked_reader = build()
    chunks = []
    while chunk := chunked_reader.read(3):
        chunks.append(chunk)
    assert b"".join(chunks) == full


def test_read_before_close_raises():
    with pytest.raises(MultipartStateError):
        MultipartReader().read(10)


def test_close_twice_raises():
    mr = MultipartReader()
    mr.close_multipart()
    with pytest.raises(MultipartStateError):
        mr.close_multipart()