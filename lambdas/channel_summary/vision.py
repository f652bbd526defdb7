# lambdas/channel_summary/vision.py
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from google import genai

from lambdas.shared.run_logger import RunLogger

MAX_SUMMARY_CHARS = 3500


@dataclass
class SummaryImage:
    image_bytes: bytes
    alt_text: str = ""


def trim_summary(summary: str, limit: int = MAX_SUMMARY_CHARS) -> str:
    return f"{summary[:limit]}..." if len(summary) > limit else summary


def build_image_prompt(summary: str, date_label: str) -> str:
    return (
        f"Create a detailed, complex slide image that reflects the community channel updates for {date_label} in Japanese. "
        "Please keep the user names and channel names as-is. Use the attached reference image of ずんだもん for style and character. "
        "Create dedicated column spaces for interesting and unique topics. Make it cute and visual heavy. "
        "Use emojis, illustrations and diagrams as much as possible instead of text. "
        f"Base the visuals on this summary:\n{trim_summary(summary)}"
    )


class SummaryIllustrator:
    """
    Asks a Gemini image model for an illustration of the text summary.
    Callers treat every failure as "no image"; the text digest is posted anyway.
    """

    def __init__(self, client: Optional[genai.Client], model: str, logger: RunLogger,
                 reference_image_path: str = ""):
        self.client = client
        self.model = model
        self.logger = logger
        self.reference_image_path = reference_image_path

    @classmethod
    def from_settings(cls, settings, logger: RunLogger) -> "SummaryIllustrator":
        client = genai.Client(api_key=settings.gemini_api_key) if settings.gemini_api_key else None
        return cls(client, settings.gemini_image_model, logger, settings.summary_reference_image)

    def _reference_image(self) -> Optional[bytes]:
        if not self.reference_image_path:
            return None
        path = Path(self.reference_image_path)
        if not path.is_file():
            self.logger.warn(f"Reference image not found at {path}.")
            return None
        return path.read_bytes()

    def generate(self, summary: str, time_range: str, date_label: str) -> Optional[SummaryImage]:
        if not self.client:
            self.logger.warn("GEMINI_API_KEY is not set. Skipping image generation.")
            return None

        parts = [{"text": build_image_prompt(summary, date_label)}]
        reference = self._reference_image()
        if reference:
            parts.append({"inline_data": {"mime_type": "image/png", "data": reference}})

        self.logger.log("Gemini: start image generation", {"time_range": time_range, "model": self.model})
        response = self.client.models.generate_content(
            model=self.model,
            contents=[{"role": "user", "parts": parts}],
            config={
                "response_modalities": ["TEXT", "IMAGE"],
                "image_config": {"aspect_ratio": "16:9", "image_size": "4K"},
            },
        )

        candidates = response.candidates or []
        response_parts = (candidates[0].content.parts or []) if candidates and candidates[0].content else []

        alt_text = ""
        image_bytes = None
        for part in response_parts:
            if part.text and not alt_text:
                alt_text = part.text
            elif part.inline_data and part.inline_data.data and image_bytes is None:
                image_bytes = part.inline_data.data

        self.logger.log("Gemini: response parsed", {
            "parts": len(response_parts),
            "has_image": image_bytes is not None,
        })
        if not image_bytes:
            return None
        return SummaryImage(image_bytes=image_bytes, alt_text=alt_text)
