import pytest

from pcsrequester.downloader.status import (
    DownloadStatus,
    StatusCode,
    WorkerStatus,
    get_status_text,
)


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


@pytest.mark.parametrize(
    "code, text",
    [
        (StatusCode.INIT, "初始化"),
        (StatusCode.SUCCESSED, "成功"),
        (StatusCode.DOWNLOADING, "下载中"),
        (StatusCode.NET_ERROR, "网络错误"),
        (StatusCode.CANCELED, "已取消"),
    ],
)
def test_status_texts(code, text):
    assert code.text() == text
    assert get_status_text(int(code)) == text


def test_unknown_status_text():
    assert get_status_text(999) == "未知状态码"


def test_codes_are_numbered_in_order():
    texts = [get_status_text(number) for number in range(12)]
    assert texts[0] == "初始化"
    assert texts[1] == "成功"
    assert texts[2] == "等待响应"
    assert texts[9] == "已暂停"
    assert texts[11] == "已取消"
    assert get_status_text(12) == "未知状态码"
    assert [code.text() for code in StatusCode] == texts


def test_worker_status_defaults_to_init():
    ws = WorkerStatus()
    assert ws.status_code is StatusCode.INIT
    assert ws.status_text() == "初始化"
    ws.status_code = StatusCode.PAUSED
    assert ws.status_text() == "已暂停"


def test_downloaded_accumulates():
    status = DownloadStatus(total_size=500)
    chunks = [10, 20, 30]
    for chunk in chunks:
        status.add(chunk)
    assert status.downloaded == sum(chunks)
    assert status.total_size == 500


def test_initial_downloaded_counts_for_speeds():
    status = DownloadStatus(total_size=500, downloaded=200)
    assert status.downloaded == 200
    assert status.speeds_downloaded == 200


def test_speed_not_updated_within_half_second():
    clock = FakeClock()
    status = DownloadStatus(clock=clock)
    status.add_speeds_downloaded(1000)
    assert status.speeds_per_second == 0
    assert status.speeds_downloaded == 1000


def test_speed_after_one_second_and_max():
    clock = FakeClock()
    status = DownloadStatus(clock=clock)
    status.add_speeds_downloaded(1000)
    clock.now = 1.0
    status.update_speeds()
    assert status.speeds_per_second == 1000
    assert status.max_speeds == status.speeds_per_second

    clock.now = 2.0
    status.update_speeds()
    assert status.speeds_per_second == 0
    assert status.max_speeds == 1000

    status.reset_max_speeds()
    assert status.max_speeds == 0


def test_time_elapsed_settable():
    status = DownloadStatus()
    status.time_elapsed = 3.5
    assert status.time_elapsed == 3.5