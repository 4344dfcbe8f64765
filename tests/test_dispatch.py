import pytest
from conftest import MB, FakeProvider, MemoryStream, WATCH_URL, sample_metadata, sample_renditions

from tubegrab.config.settings import config
from tubegrab.core.errors import FormatNotFound, NotFound, UpstreamFailure
from tubegrab.models.internal import TransferPath
from tubegrab.services.catalog import CatalogBuilder
from tubegrab.services.dispatch import DownloadDispatcher, container_extension


def options_by_quality():
    options = CatalogBuilder.build(sample_renditions())
    return {
        "hq": options[0],
        "720_combined": options[1],
        "720_split": options[2],
        "360": options[3],
        "audio": options[4],
    }


def test_route():
    options = options_by_quality()
    assert DownloadDispatcher.route(options["hq"]) is TransferPath.MUXED
    assert DownloadDispatcher.route(options["720_split"]) is TransferPath.MUXED
    assert DownloadDispatcher.route(options["720_combined"]) is TransferPath.SINGLE
    assert DownloadDispatcher.route(options["360"]) is TransferPath.SINGLE
    assert DownloadDispatcher.route(options["audio"]) is TransferPath.AUDIO


def test_plan_single():
    plan = DownloadDispatcher.plan(sample_metadata(), options_by_quality()["360"])

    assert plan.path is TransferPath.SINGLE
    assert plan.single.identifier == "18"
    assert plan.filename == "My_Video_Part_1.mp4"
    assert plan.media_type == "video/mp4"
    assert plan.headers["Content-Length"] == str(5 * MB)
    assert plan.headers["Content-Disposition"] == 'attachment; filename="My_Video_Part_1.mp4"'


def test_plan_without_length_has_no_content_length_header():
    plan = DownloadDispatcher.plan(sample_metadata(), options_by_quality()["720_combined"])
    assert plan.content_length is None
    assert "Content-Length" not in plan.headers


def test_plan_audio():
    plan = DownloadDispatcher.plan(sample_metadata(), options_by_quality()["audio"])

    assert plan.path is TransferPath.AUDIO
    assert plan.single.identifier == "251"
    assert plan.filename == "My_Video_Part_1.mp3"
    assert plan.media_type == "audio/mpeg"


def test_plan_muxed():
    plan = DownloadDispatcher.plan(sample_metadata(), options_by_quality()["hq"])

    assert plan.path is TransferPath.MUXED
    assert (plan.video.identifier, plan.audio.identifier) == ("137", "251")
    assert plan.filename == "My_Video_Part_1.mp4"
    assert "Content-Length" not in plan.headers


def test_plan_with_vanished_ids():
    option = options_by_quality()["hq"]
    remaining = [r for r in sample_renditions() if r.identifier != "137"]

    with pytest.raises(FormatNotFound) as exc_info:
        DownloadDispatcher.plan(sample_metadata(renditions=remaining), option)
    assert isinstance(exc_info.value, NotFound)
    assert exc_info.value.status_code == 404

    with pytest.raises(FormatNotFound):
        DownloadDispatcher.plan(sample_metadata(renditions=[]), options_by_quality()["360"])


@pytest.mark.asyncio
async def test_open_single_returns_provider_stream():
    stream = MemoryStream([b"data"])
    provider = FakeProvider(sample_metadata(), streams={"18": stream})
    plan = DownloadDispatcher.plan(provider.metadata, options_by_quality()["360"])

    source = await DownloadDispatcher.open(plan, provider, WATCH_URL)

    assert source is stream
    assert provider.opened == ["18"]


@pytest.mark.asyncio
async def test_open_muxed_closes_video_when_audio_fails():
    video = MemoryStream([b"v"])
    provider = FakeProvider(
        sample_metadata(),
        streams={"137": video},
        fail_on={"251": UpstreamFailure("audio answered HTTP 403")},
    )
    plan = DownloadDispatcher.plan(provider.metadata, options_by_quality()["hq"])

    with pytest.raises(UpstreamFailure):
        await DownloadDispatcher.open(plan, provider, WATCH_URL)

    assert provider.opened == ["137", "251"]
    assert video.closed


@pytest.mark.asyncio
async def test_open_muxed_closes_streams_when_muxer_is_missing(monkeypatch, tmp_path):
    monkeypatch.setattr(config.ffmpeg, "binary", str(tmp_path / "no-such-ffmpeg"))
    video, audio = MemoryStream([b"v"]), MemoryStream([b"a"])
    provider = FakeProvider(sample_metadata(), streams={"137": video, "251": audio})
    plan = DownloadDispatcher.plan(provider.metadata, options_by_quality()["hq"])

    with pytest.raises(UpstreamFailure):
        await DownloadDispatcher.open(plan, provider, WATCH_URL)

    assert video.closed
    assert audio.closed


def test_container_extension():
    assert container_extension("webm") == "webm"
    assert container_extension("mp4") == "mp4"
    assert container_extension(None) == "mp4"
    assert container_extension("mp€4") == "mp4"
    assert container_extension('mp4"; x=') == "mp4"


def test_plan_ignores_extension_sent_by_client():
    option = options_by_quality()["360"].model_copy(update={"format": "mp€4"})
    plan = DownloadDispatcher.plan(sample_metadata(), option)

    assert plan.filename == "My_Video_Part_1.mp4"
    # Every header value must be latin-1 encodable
    for value in plan.headers.values():
        value.encode("latin-1")
