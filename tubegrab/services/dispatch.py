import re
from typing import Optional

from fastapi import Request

from tubegrab.core.errors import FormatNotFound
from tubegrab.core.logging import log_info
from tubegrab.models.internal import TransferPath, TransferPlan, VideoMetadata
from tubegrab.models.response import RenditionOption
from tubegrab.services.catalog import AUDIO_ONLY_CONTAINER, AUDIO_ONLY_LABEL, SPLIT_CONTAINER
from tubegrab.services.mux import MuxPipeline
from tubegrab.services.provider import MediaProvider
from tubegrab.services.streams import ElementaryStream
from tubegrab.utils.filename import attachment_filename


CONTAINER_RE = re.compile(r"[a-z0-9]{1,5}")


def media_type_for(ext: str) -> str:
    return "audio/mpeg" if ext == AUDIO_ONLY_CONTAINER else "video/mp4"


def container_extension(container: Optional[str]) -> str:
    """File extension of a resolved rendition, never anything header-unsafe"""
    if container and CONTAINER_RE.fullmatch(container):
        return container
    return SPLIT_CONTAINER


class DownloadDispatcher:
    """Pick the retrieval strategy for a chosen option and open its source"""

    @staticmethod
    def route(option: RenditionOption) -> TransferPath:
        if option.is_high_quality:
            return TransferPath.MUXED
        if option.quality == AUDIO_ONLY_LABEL:
            return TransferPath.AUDIO
        # Split options below 1080p carry no single id; they still need muxing
        if option.itag is None and option.is_split:
            return TransferPath.MUXED
        return TransferPath.SINGLE

    @staticmethod
    def plan(metadata: VideoMetadata, option: RenditionOption) -> TransferPlan:
        """
        Resolve the option against freshly fetched metadata.
        Stream ids can expire between analysis and download, so a miss is a
        client-facing FormatNotFound rather than a crash.
        """
        path = DownloadDispatcher.route(option)

        if path is TransferPath.MUXED:
            video = metadata.find_rendition(option.video_itag)
            audio = metadata.find_rendition(option.audio_itag)
            if video is None or audio is None:
                raise FormatNotFound("Requested formats not found")
            return TransferPlan(
                path=path,
                filename=attachment_filename(metadata.title, SPLIT_CONTAINER),
                media_type=media_type_for(SPLIT_CONTAINER),
                video=video,
                audio=audio,
            )

        rendition = metadata.find_rendition(option.itag)
        if rendition is None:
            raise FormatNotFound("Requested format not found")

        # The extension comes from the provider, not from the option sent back
        ext = AUDIO_ONLY_CONTAINER if path is TransferPath.AUDIO else container_extension(rendition.container)
        return TransferPlan(
            path=path,
            filename=attachment_filename(metadata.title, ext),
            media_type=media_type_for(ext),
            content_length=rendition.content_length,
            single=rendition,
        )

    @staticmethod
    async def open(
        plan: TransferPlan,
        provider: MediaProvider,
        url: str,
        request: Optional[Request] = None,
    ) -> ElementaryStream:
        """Acquire every upstream handle the plan needs, or none of them"""
        if plan.path is not TransferPath.MUXED:
            return await provider.open_stream(url, plan.single)

        video = await provider.open_stream(url, plan.video)
        try:
            audio = await provider.open_stream(url, plan.audio)
        except BaseException:
            await video.aclose()
            raise

        pipeline = MuxPipeline(video, audio, request=request)
        try:
            await pipeline.start()
        except BaseException:
            await pipeline.aclose()
            raise

        log_info(
            request,
            f"Muxing video {plan.video.identifier} with audio {plan.audio.identifier} (pid {pipeline.process.pid})",
        )
        return pipeline
