# lambdas/channel_summary/app.py
from dataclasses import dataclass
from typing import Optional

from openai import OpenAI

from lambdas.channel_summary.audio import AudioSummarizer, normalize_engine, normalize_language
from lambdas.channel_summary.summarizer import TextSummarizer
from lambdas.channel_summary.time_window import TimeWindow, describe, get_time_window
from lambdas.channel_summary.transcript import build_transcript, format_channel_link, select_updated_channels
from lambdas.channel_summary.vision import SummaryIllustrator, SummaryImage
from lambdas.shared.api_gateway import (
    build_response,
    get_flag,
    get_query_params,
    is_authorized_trigger,
    is_preflight,
    preflight_response,
)
from lambdas.shared.mattermost import MattermostClient, MattermostError, UsernameCache, client_from_settings
from lambdas.shared.run_logger import RunLogger
from lambdas.shared.settings import get_settings

SUMMARY_IMAGE_NAME = "channel-summary.png"

# Reused across warm invocations
USERNAME_CACHE = UsernameCache()


@dataclass
class SummaryRequest:
    debug: bool
    for_today: bool
    summary_type: str
    lang: str
    engine: str

    @classmethod
    def from_event(cls, event: dict) -> "SummaryRequest":
        params = get_query_params(event)
        return cls(
            debug=get_flag(params, "debug"),
            for_today=get_flag(params, "forToday"),
            summary_type="audio" if params.get("type") == "audio" else "text",
            lang=normalize_language(params.get("lang")),
            engine=normalize_engine(params.get("engine")),
        )


def audio_title(audio_url: str, lang: str, engine: str) -> str:
    if engine == "voicevox":
        return f":zundamon: ずんだもんのチャンネルサマリー（音声版）なのだ！\n{audio_url}"
    if lang == "ja-JP":
        return f"チャンネルサマリー（音声版・日本語）\n{audio_url}"
    return f"Channel Summary (Audio Version - English)\n{audio_url}"


def with_alt_text(message: str, alt_text: str) -> str:
    return f"{message}\n\n(画像の説明: {alt_text})" if alt_text else message


class SummaryPoster:
    """Posts into the configured summary channel; a missing channel id turns every post into a logged no-op."""

    def __init__(self, client: MattermostClient, channel_id: str, logger: RunLogger):
        self.client = client
        self.channel_id = channel_id
        self.logger = logger

    def post(self, message: str, file_ids: Optional[list] = None) -> None:
        if not self.channel_id:
            self.logger.warn("MATTERMOST_SUMMARY_CHANNEL is not set. Skipping post.")
            return
        self.client.create_post(self.channel_id, message, file_ids=file_ids)

    def post_with_image(self, message: str, image: SummaryImage) -> None:
        if not self.channel_id:
            self.logger.warn("MATTERMOST_SUMMARY_CHANNEL is not set. Skipping post.")
            return
        file_id = self.client.upload_file(self.channel_id, SUMMARY_IMAGE_NAME, image.image_bytes, "image/png")
        self.post(with_alt_text(message, image.alt_text), file_ids=[file_id])


def try_generate_image(illustrator: SummaryIllustrator, summary: str, window: TimeWindow,
                       logger: RunLogger) -> Optional[SummaryImage]:
    logger.log("Attempting Gemini image generation for summary")
    try:
        image = illustrator.generate(summary, window.label, window.date_label)
    except Exception as e:
        logger.error(f"Failed to generate image with Gemini: {e}")
        return None
    if image:
        logger.log("Generated summary image", {
            "byte_length": len(image.image_bytes),
            "alt_text_preview": image.alt_text[:80],
        })
    else:
        logger.log("Gemini returned no image; will fall back to text only.")
    return image


def image_info(image: Optional[SummaryImage]) -> dict:
    if not image:
        return {"hasImage": False}
    return {"hasImage": True, "altText": image.alt_text, "byteLength": len(image.image_bytes)}


def run_text_summary(request: SummaryRequest, transcript: str, window: TimeWindow, summarizer: TextSummarizer,
                     illustrator: SummaryIllustrator, poster: SummaryPoster, logger: RunLogger) -> dict:
    summary = summarizer.summarize(transcript, window.label)
    image = try_generate_image(illustrator, summary, window, logger)

    if not request.debug:
        if image:
            poster.post_with_image(summary, image)
            logger.log("Posted summary with image to Mattermost")
        else:
            poster.post(summary)
            logger.log("Posted text-only summary to Mattermost")

    body = {
        "message": ("Debug mode: Generated summary without posting" if request.debug
                    else f"Posted {window.label}'s channel summary."),
        "summary": summary,
    }
    if request.debug:
        body["image"] = image_info(image)
        body["logs"] = logger.lines
    return body


def run_audio_summary(request: SummaryRequest, transcript: str, window: TimeWindow, audio: AudioSummarizer,
                      poster: SummaryPoster, logger: RunLogger) -> dict:
    result = audio.generate(transcript, window.label, request.lang, request.engine)

    if not request.debug:
        poster.post(audio_title(result.audio_url, request.lang, request.engine))
        logger.log(f"Posted {request.engine} {request.lang} audio summary for {window.label}")

    body = {
        "message": ("Debug mode: Generated audio without posting" if request.debug
                    else f"Posted {window.label}'s channel audio summary."),
        "audioUrl": result.audio_url,
        "language": request.lang,
        "engine": request.engine,
    }
    if request.debug:
        body["logs"] = logger.lines
        body["script"] = result.script
    return body


def summarize_channels(request: SummaryRequest, settings, client: MattermostClient, logger: RunLogger,
                       window: Optional[TimeWindow] = None) -> dict:
    """
    Collects the window's public channel activity and posts a digest of it.
    LLM clients are only built once there is something to summarize.
    """
    window = window or get_time_window(request.for_today, settings.utc_offset_hours)
    logger.log(
        f"Request parameters: debug={request.debug}, forToday={request.for_today}, "
        f"type={request.summary_type}, lang={request.lang}, engine={request.engine}"
    )
    logger.log(f"Time range: {describe(window)}")

    try:
        channels = client.list_team_channels(settings.mattermost_main_team)
    except MattermostError as e:
        logger.error(f"[list_team_channels] {e}")
        return build_response(500, {"error": "Failed to fetch channels"})

    updated = select_updated_channels(channels, window, settings.mattermost_summary_channel)
    if request.debug:
        logger.log(f"[debug] channels after filter ({len(updated)} of {len(channels)}):", [
            {"id": ch.get("id"), "name": ch.get("name"), "display_name": ch.get("display_name"),
             "last_post_at": ch.get("last_post_at")}
            for ch in updated
        ])
    logger.log(f"Channels updated {window.label}: {len(updated)}")

    transcript = build_transcript(client, updated, window, settings.mattermost_url, settings.mattermost_team_name)
    poster = SummaryPoster(client, settings.mattermost_summary_channel, logger)

    if not transcript.strip():
        logger.log("No summary content generated.")
        body = {"message": f"No updates {window.label}"}
        if request.debug:
            body["logs"] = logger.lines
        else:
            poster.post(f"{window.label}は更新がありませんでした。")
        return build_response(200, body)

    openai_client = OpenAI(api_key=settings.openai_api_key)
    if request.summary_type == "audio":
        audio = AudioSummarizer.from_settings(settings, openai_client, logger)
        body = run_audio_summary(request, transcript, window, audio, poster, logger)
    else:
        summarizer = TextSummarizer(
            openai_client,
            settings.openai_summary_model,
            logger,
            channel_link_example=format_channel_link(
                settings.mattermost_url, settings.mattermost_team_name, "チャンネル名", "channel-name"
            ),
            countdown_event_name=settings.countdown_event_name,
            countdown_event_date=settings.countdown_event_date,
        )
        illustrator = SummaryIllustrator.from_settings(settings, logger)
        body = run_text_summary(request, transcript, window, summarizer, illustrator, poster, logger)
    return build_response(200, body)


def handler(event: dict, context: object) -> dict:
    """
    Posts a digest of yesterday's (or today's) public channel activity.

    Query params: debug, forToday, type (text|audio), lang (ja-JP|en-US),
    engine (gemini|voicevox). Debug mode generates without posting and
    returns the run's log lines.
    """
    if is_preflight(event):
        return preflight_response()

    request = SummaryRequest.from_event(event)
    logger = RunLogger(collect=request.debug)
    settings = get_settings()
    if not is_authorized_trigger(event, settings.trigger_token):
        logger.warn("Rejected channel-summary call without a valid trigger token.")
        return build_response(403, {"error": "Forbidden"})
    try:
        client = client_from_settings(settings, logger, USERNAME_CACHE)
        return summarize_channels(request, settings, client, logger)
    except Exception as e:
        logger.error(f"channel-summary error: {e}")
        body = {"error": str(e) or "Unknown error"}
        if request.debug:
            body["logs"] = logger.lines
        return build_response(500, body)
