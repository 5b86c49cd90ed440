# tests/test_services/test_transcode_runner.py
import asyncio

import pytest

from streamvault.core.exceptions import BadRequest, UpstreamFailure
from streamvault.services.transcode_runner import (
    JobState,
    TranscodeJob,
    TranscodeJobRunner,
    build_job_settings,
)
from streamvault.utils.mediaconvert import JobStatus, TranscodingError
from tests.fixtures.fakes import FakeClock, FakeObjectStore, FakeTranscodingService

FOLDER = "hls/ep-1/en/"


def _runner(service, store, clock, **kw) -> TranscodeJobRunner:
    kw.setdefault("poll_interval", 5.0)
    kw.setdefault("timeout", 600.0)
    return TranscodeJobRunner(service=service, store=store, sleep=clock.sleep, clock=clock, **kw)


class FlakyTranscoder(FakeTranscodingService):
    """First ``flaky_polls`` status checks fail at the transport level."""

    def __init__(self, *args, flaky_polls: int = 1, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.flaky_polls = flaky_polls

    async def get_job(self, job_id: str) -> JobStatus:
        if self.flaky_polls > 0:
            self.flaky_polls -= 1
            raise TranscodingError("connection reset")
        return await super().get_job(job_id)


@pytest.mark.parametrize("path", ["", "videos/a.mp4", "gs://bucket/a.mp4", "s3://", "s3://a"])
def test_input_path_requires_scheme_and_key(path):
    runner = TranscodeJobRunner(service=FakeTranscodingService(), store=FakeObjectStore())
    with pytest.raises(BadRequest):
        runner.check_input_path(path)


def test_input_path_accepted_with_configured_scheme():
    runner = TranscodeJobRunner(service=FakeTranscodingService(), store=FakeObjectStore(), input_scheme="gs://")
    assert runner.check_input_path(" gs://bucket/a.mp4 ") == "gs://bucket/a.mp4"


def test_job_settings_hls_single_directory_ten_second_segments():
    settings = build_job_settings("s3://in/a.mp4", "s3://out/hls/x/en/playlist", "abr")
    group = settings["OutputGroups"][0]
    hls = group["OutputGroupSettings"]["HlsGroupSettings"]

    assert settings["Inputs"][0]["FileInput"] == "s3://in/a.mp4"
    assert hls["Destination"] == "s3://out/hls/x/en/playlist"
    assert hls["SegmentLength"] == 10
    assert hls["DirectoryStructure"] == "SINGLE_DIRECTORY"
    assert [o["NameModifier"] for o in group["Outputs"]] == ["_sd", "_hd"]
    for output in group["Outputs"]:
        assert output["ContainerSettings"]["Container"] == "M3U8"
        assert output["AudioDescriptions"][0]["CodecSettings"]["Codec"] == "AAC"


def test_unknown_quality_profile_rejected():
    with pytest.raises(BadRequest):
        build_job_settings("s3://in/a.mp4", "s3://out/p", "4k")


@pytest.mark.anyio
async def test_submit_targets_output_folder(fake_store, fake_clock):
    service = FakeTranscodingService(fake_store)
    job = await _runner(service, fake_store, fake_clock).submit("s3://in/a.mp4", FOLDER, "sd")

    assert job.job_id == "job-1"
    assert job.state is JobState.PENDING
    assert job.playlist_path == FOLDER + "playlist.m3u8"
    dest = service.created[0]["OutputGroups"][0]["OutputGroupSettings"]["HlsGroupSettings"]["Destination"]
    assert dest == f"s3://streamvault-test/{FOLDER}playlist"


@pytest.mark.anyio
async def test_submit_error_is_upstream_failure(fake_store, fake_clock):
    service = FakeTranscodingService(fake_store, fail_submit=True)
    with pytest.raises(UpstreamFailure) as ei:
        await _runner(service, fake_store, fake_clock).submit("s3://in/a.mp4", FOLDER, "sd")
    assert ei.value.status_code == 502


@pytest.mark.anyio
async def test_completion_succeeds_after_polls(fake_store, fake_clock):
    service = FakeTranscodingService(fake_store, polls_before_done=3)
    runner = _runner(service, fake_store, fake_clock)
    job = await runner.submit("s3://in/a.mp4", FOLDER, "sd")

    result = await runner.await_completion(job)

    assert result.succeeded
    assert result.playlist_path == FOLDER + "playlist.m3u8"
    assert fake_clock.sleeps == [5.0, 5.0, 5.0]
    assert FOLDER + "playlist.m3u8" in fake_store.objects


@pytest.mark.anyio
async def test_service_error_maps_to_failed_with_message(fake_store, fake_clock):
    service = FakeTranscodingService(fake_store, outcomes=["ERROR"])
    runner = _runner(service, fake_store, fake_clock)
    result = await runner.await_completion(await runner.submit("s3://in/a.mp4", FOLDER, "sd"))

    assert result.state is JobState.FAILED
    assert result.error_message == "Input file is corrupt"


@pytest.mark.anyio
async def test_canceled_job_is_failed(fake_store, fake_clock):
    service = FakeTranscodingService(fake_store, outcomes=["CANCELED"])
    runner = _runner(service, fake_store, fake_clock)
    result = await runner.await_completion(await runner.submit("s3://in/a.mp4", FOLDER, "sd"))

    assert result.state is JobState.FAILED
    assert result.error_message == "Job was canceled"


@pytest.mark.anyio
async def test_deadline_reached_is_timed_out(fake_store, fake_clock):
    service = FakeTranscodingService(fake_store, outcomes=["PROGRESSING"])
    runner = _runner(service, fake_store, fake_clock, timeout=12.0)
    result = await runner.await_completion(await runner.submit("s3://in/a.mp4", FOLDER, "sd"))

    assert result.state is JobState.TIMED_OUT
    assert fake_clock.sleeps == [5.0, 5.0, 2.0]
    assert sum(fake_clock.sleeps) == 12.0
    assert service.polls == 3
    assert service.cancelled == [result.job_id]


@pytest.mark.anyio
async def test_timed_out_job_cancel_failure_is_logged_not_raised(fake_store, fake_clock):
    class StubbornTranscoder(FakeTranscodingService):
        async def cancel_job(self, job_id: str) -> None:
            raise TranscodingError("ConflictException")

    service = StubbornTranscoder(fake_store, outcomes=["PROGRESSING"])
    runner = _runner(service, fake_store, fake_clock, timeout=10.0)
    result = await runner.await_completion(await runner.submit("s3://in/a.mp4", FOLDER, "sd"))

    assert result.state is JobState.TIMED_OUT
    assert service.cancelled == []


@pytest.mark.anyio
async def test_poll_transport_error_keeps_polling(fake_store, fake_clock):
    service = FlakyTranscoder(fake_store, flaky_polls=2)
    runner = _runner(service, fake_store, fake_clock)
    result = await runner.await_completion(await runner.submit("s3://in/a.mp4", FOLDER, "sd"))

    assert result.succeeded
    assert len(fake_clock.sleeps) == 3


def test_terminal_state_is_immutable():
    job = TranscodeJob(job_id="j", input_path="s3://a/b", output_folder=FOLDER, submitted_at=0.0)
    job.transition(JobState.SUCCEEDED)
    with pytest.raises(RuntimeError):
        job.transition(JobState.FAILED, "late")
    assert job.state is JobState.SUCCEEDED


@pytest.mark.anyio
@pytest.mark.parametrize("cancel_on_disconnect, expect_cancel", [(False, False), (True, True)])
async def test_caller_cancellation_follows_policy(fake_store, cancel_on_disconnect, expect_cancel):
    service = FakeTranscodingService(fake_store, outcomes=["PROGRESSING"])
    entered = asyncio.Event()

    async def blocking_sleep(_seconds: float) -> None:
        entered.set()
        await asyncio.Event().wait()

    runner = TranscodeJobRunner(
        service=service,
        store=fake_store,
        cancel_on_disconnect=cancel_on_disconnect,
        sleep=blocking_sleep,
    )
    job = await runner.submit("s3://in/a.mp4", FOLDER, "sd")
    task = asyncio.create_task(runner.await_completion(job))
    await entered.wait()
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task
    assert (job.job_id in service.cancelled) is expect_cancel
    assert job.state is JobState.PENDING
