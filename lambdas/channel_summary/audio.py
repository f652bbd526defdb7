# lambdas/channel_summary/audio.py
"""
Audio digest: an LLM writes a spoken script from the transcript, then either
the hosted multi-speaker job API (engine "gemini") or a VoiceVox engine
(engine "voicevox") turns it into a playable URL.
"""
import base64
import json
import random
import re
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import List, Optional, Tuple

import boto3
import requests
from botocore.exceptions import BotoCoreError, ClientError
from openai import OpenAI, OpenAIError

from lambdas.channel_summary.summarizer import SummaryGenerationError, complete, load_prompt
from lambdas.channel_summary.wav_helper import merge_wav_files
from lambdas.shared.run_logger import RunLogger

ENGINE_GEMINI = "gemini"
ENGINE_VOICEVOX = "voicevox"
LANGUAGES = ("ja-JP", "en-US")

TTS_MODEL = "gemini-2.5-pro-preview-tts"
SPEAKERS = ["Speaker 1", "Speaker 2"]

VOICEVOX_SPEAKER = 3
VOICEVOX_TUNING = {
    "speedScale": 1.15,
    "pitchScale": 0.04,
    "intonationScale": 1.5,
    "volumeScale": 1,
}
VOICEVOX_CHUNK_LENGTH = 500
VOICEVOX_STAGGER_SECONDS = 0.05
VOICEVOX_MAX_WORKERS = 8
# Seconds the job event stream may stay silent while the TTS job runs
SSE_READ_TIMEOUT = 600

AVAILABLE_VOICES = [
    "Zephyr", "Puck", "Charon", "Kore", "Fenrir", "Leda", "Orus", "Aoede",
    "Callirhoe", "Autonoe", "Enceladus", "Iapetus", "Umbriel", "Algieba",
    "Despina", "Erinome", "Algenib", "Rasalgethi", "Laomedeia", "Achernar",
    "Alnilam", "Schedar", "Gacrux", "Pulcherrima", "Achird", "Zubenelgenubi",
    "Vindemiatrix", "Sadachbia", "Sadaltager", "Sulafar",
]

NARRATOR_SYSTEM_PROMPT = "あなたはずんだもんとして、楽しいポッドキャストを作るプロフェッショナルです。"
PODCAST_SYSTEM_PROMPTS = {
    "ja-JP": "You're a professional podcast creator specialized in Japanese.",
    "en-US": "You're a professional podcast creator specialized in English.",
}
VOICE_STYLE_PROMPTS = {
    "ja-JP": "Japanese tech podcaster speaking very fast and casually",
    "en-US": "English tech podcaster speaking enthusiastically and casually",
}

PODCAST_PHRASES = {
    "ja-JP": {
        "opening": "皆さんおはようございます！未踏ジュニアポッドキャストへようこそ！",
        "affirmations": '"そうですね" "たしかに" "ほんそれ" and "ほんとうにそう！"',
        "rhetorical": "これ面白くないですか？",
        "fillers": '"えーっと" and "なんていうか" "えー" "あのー"',
        "naturalizing": 'natural in Japanese like "のチャンネル" "さんによると"',
        "analogy": "まるで XXX みたい！",
        "validation": "いやー、わかってますね",
        "audience": "今聞いている未踏ジュニアのみなさんも",
        "summarize": "まとめると",
        "wrap_up": "そろそろ時間なんですが",
        "transition": "じゃあ",
        "encourage": "未踏ジュニアのコミュニティを一緒に盛り上げていきましょう",
        "ending": "明日は XXX な話があるのか、楽しみですね。",
        "speaker1": "皆さん、こんにちは！未踏ジュニアポッドキャストへようこそ！",
        "speaker2": "いや〜、今日も始まりましたね！",
        "community": "未踏ジュニアコミュニティ",
        "project_name": "未踏ジュニア",
    },
    "en-US": {
        "opening": "Good morning everyone! Welcome to the Mitou Junior Podcast!",
        "affirmations": '"absolutely" "exactly" "totally" and "so true!"',
        "rhetorical": "Isn't this fascinating?",
        "fillers": '"um" and "you know" "well" "so"',
        "naturalizing": 'natural in English like "in the X channel" "according to X"',
        "analogy": "It's like XXX!",
        "validation": "wow, you really get it",
        "audience": "For those of you listening from Mitou Junior",
        "summarize": "to sum it up",
        "wrap_up": "We're running out of time, but",
        "transition": "so",
        "encourage": "Let's keep building this amazing Mitou Junior community together",
        "ending": "I can't wait to see what exciting discussions we'll have tomorrow.",
        "speaker1": "Good morning everyone! Welcome to the Mitou Junior Podcast!",
        "speaker2": "Oh wow, here we go again!",
        "community": "Mitou Junior Community",
        "project_name": "Mitou Junior",
    },
}

_SENTENCE_END = re.compile(r"(?<=[。！？\n])")


@dataclass
class AudioResult:
    audio_url: str
    script: str


def normalize_language(lang: Optional[str]) -> str:
    return lang if lang in LANGUAGES else "ja-JP"


def normalize_engine(engine: Optional[str]) -> str:
    return ENGINE_VOICEVOX if engine == ENGINE_VOICEVOX else ENGINE_GEMINI


def pick_voices(rng: Optional[random.Random] = None) -> Tuple[str, str]:
    first, second = (rng or random).sample(AVAILABLE_VOICES, 2)
    return first, second


def build_podcast_prompt(time_range: str, transcript: str, lang: str) -> str:
    return load_prompt("podcast_prompt.txt").format(
        time_range=time_range, transcript=transcript, **PODCAST_PHRASES[lang]
    )


def build_narration_prompt(time_range: str, transcript: str) -> str:
    return load_prompt("narration_prompt.txt").format(time_range=time_range, transcript=transcript)


def split_text_for_voicevox(text: str, max_length: int = VOICEVOX_CHUNK_LENGTH) -> List[str]:
    """
    Packs sentences (ending in 。！？ or a newline) into chunks of at most
    max_length characters. A single sentence longer than that stays whole.
    """
    chunks: List[str] = []
    current = ""
    for sentence in _SENTENCE_END.split(text):
        if current and len(current) + len(sentence) > max_length:
            chunks.append(current.strip())
            current = sentence
        else:
            current += sentence
    if current.strip():
        chunks.append(current.strip())
    return chunks


def parse_sse_event(line: str) -> Optional[dict]:
    if not line.startswith("data: "):
        return None
    try:
        return json.loads(line[len("data: "):])
    except json.JSONDecodeError:
        return None


class AudioSummarizer:
    def __init__(self, openai_client: OpenAI, script_model: str, logger: RunLogger,
                 audio_job_api_url: str = "", voicevox_api_url: str = "",
                 s3_client=None, audio_bucket: str = "", public_base_url: str = "",
                 session: Optional[requests.Session] = None, timeout: float = 30.0):
        self.openai_client = openai_client
        self.script_model = script_model
        self.logger = logger
        self.audio_job_api_url = audio_job_api_url
        self.voicevox_api_url = voicevox_api_url.rstrip("/")
        self.s3_client = s3_client
        self.audio_bucket = audio_bucket
        self.public_base_url = public_base_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings, openai_client: OpenAI, logger: RunLogger) -> "AudioSummarizer":
        s3_client = boto3.client("s3", region_name=settings.aws_region) if settings.audio_bucket else None
        return cls(
            openai_client,
            settings.openai_script_model,
            logger,
            audio_job_api_url=settings.audio_job_api_url,
            voicevox_api_url=settings.voicevox_api_url,
            s3_client=s3_client,
            audio_bucket=settings.audio_bucket,
            public_base_url=settings.audio_public_base_url,
            timeout=settings.http_timeout_seconds,
        )

    # ---- script ----

    def generate_script(self, transcript: str, time_range: str, lang: str, engine: str) -> str:
        if engine == ENGINE_VOICEVOX:
            system_prompt = NARRATOR_SYSTEM_PROMPT
            user_prompt = build_narration_prompt(time_range, transcript)
        else:
            system_prompt = PODCAST_SYSTEM_PROMPTS[lang]
            user_prompt = build_podcast_prompt(time_range, transcript, lang)

        self.logger.log(
            f"Calling OpenAI for the audio script (model: {self.script_model}, engine: {engine})..."
        )
        try:
            script = complete(self.openai_client, self.script_model, system_prompt, user_prompt)
        except OpenAIError as e:
            raise SummaryGenerationError(f"OpenAI script request failed: {e}") from e
        self.logger.log(f"Audio script generated. Length: {len(script)} characters")
        return script

    # ---- hosted multi-speaker job ----

    def submit_audio_job(self, script: str, lang: str) -> Optional[dict]:
        voice1, voice2 = pick_voices()
        self.logger.log(f"Selected voices: {voice1}, {voice2}")
        payload = {
            "script": script,
            "speakers": SPEAKERS,
            "voices": [voice1, voice2],
            "prompt": VOICE_STYLE_PROMPTS[lang],
            "model": TTS_MODEL,
            "language": lang,
        }
        self.logger.log(f"Submitting audio job to {self.audio_job_api_url}")
        try:
            response = self.session.post(self.audio_job_api_url, json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            self.logger.error(f"[submit_audio_job] error: {e}")
            return None
        if not response.ok:
            self.logger.error(f"[submit_audio_job] API call failed: {response.text}")
            return None
        return response.json()

    def wait_for_audio_completion(self, events_url: str) -> Optional[str]:
        """
        Follows the job's server-sent events until one carries a url with
        status waiting/completed. error, timeout or end of stream mean failure.
        """
        self.logger.log(f"Connecting to SSE: {events_url}")
        try:
            with self.session.get(events_url, stream=True, timeout=(self.timeout, SSE_READ_TIMEOUT)) as response:
                if not response.ok:
                    self.logger.error("[wait_for_audio_completion] SSE connection failed")
                    return None
                for line in response.iter_lines(decode_unicode=True):
                    event = parse_sse_event(line or "")
                    if event is None:
                        continue
                    self.logger.log("SSE update:", event)
                    status = event.get("status")
                    if event.get("url") and status in ("waiting", "completed"):
                        return event["url"]
                    if status in ("error", "timeout"):
                        self.logger.error("Audio generation failed:", event)
                        return None
        except requests.RequestException as e:
            self.logger.error(f"[wait_for_audio_completion] error: {e}")
            return None

        self.logger.error("SSE stream ended without completion")
        return None

    # ---- VoiceVox ----

    def synthesize_chunk(self, index: int, chunk: str, total: int) -> Optional[bytes]:
        time.sleep(index * VOICEVOX_STAGGER_SECONDS)
        self.logger.log(f"Processing chunk {index + 1}/{total}, length: {len(chunk)}")
        try:
            query_response = self.session.post(
                f"{self.voicevox_api_url}/audio_query",
                params={"text": chunk, "speaker": VOICEVOX_SPEAKER},
                timeout=self.timeout,
            )
            if not query_response.ok:
                self.logger.error(f"[voicevox] audio query failed for chunk {index + 1}: {query_response.text}")
                return None

            audio_query = {**query_response.json(), **VOICEVOX_TUNING}
            synthesis_response = self.session.post(
                f"{self.voicevox_api_url}/synthesis",
                params={"speaker": VOICEVOX_SPEAKER},
                json=audio_query,
                timeout=self.timeout,
            )
            if not synthesis_response.ok:
                self.logger.error(f"[voicevox] synthesis failed for chunk {index + 1}: {synthesis_response.text}")
                return None
        except (requests.RequestException, ValueError) as e:
            self.logger.error(f"[voicevox] error on chunk {index + 1}: {e}")
            return None

        self.logger.log(f"Chunk {index + 1} synthesized, size: {len(synthesis_response.content)}")
        return synthesis_response.content

    def synthesize_with_voicevox(self, script: str) -> Optional[str]:
        chunks = split_text_for_voicevox(script)
        self.logger.log(f"Synthesizing with VoiceVox: {len(script)} characters in {len(chunks)} chunks")
        if not chunks:
            return None

        with ThreadPoolExecutor(max_workers=min(VOICEVOX_MAX_WORKERS, len(chunks))) as pool:
            futures = [pool.submit(self.synthesize_chunk, i, chunk, len(chunks)) for i, chunk in enumerate(chunks)]
            results = [f.result() for f in futures]

        buffers = [b for b in results if b]
        if not buffers:
            self.logger.error("[voicevox] No audio chunks were successfully synthesized")
            return None

        self.logger.log(f"Successfully synthesized {len(buffers)} audio chunks. Merging...")
        merged = merge_wav_files(buffers, self.logger)
        return self.store_audio(merged)

    def store_audio(self, data: bytes) -> str:
        """
        Uploads the merged WAV and returns its link under AUDIO_PUBLIC_BASE_URL.
        Without a bucket and a public base URL, or when the upload fails, the
        audio is returned inline as a data URL.
        """
        key = f"voice/zundamon_merged_{int(time.time() * 1000)}.wav"
        if self.s3_client and self.audio_bucket and self.public_base_url:
            try:
                self.s3_client.put_object(Bucket=self.audio_bucket, Key=key, Body=data, ContentType="audio/wav")
                url = f"{self.public_base_url}/{key}"
                self.logger.log(f"Merged audio uploaded to: {url}")
                return url
            except (ClientError, BotoCoreError) as e:
                self.logger.error(f"Failed to upload merged audio to storage: {e}")
        else:
            self.logger.warn("AUDIO_BUCKET or AUDIO_PUBLIC_BASE_URL is not set. Returning inline audio.")
        return "data:audio/wav;base64," + base64.b64encode(data).decode("ascii")

    # ---- entry point ----

    def generate(self, transcript: str, time_range: str, lang: str, engine: str) -> AudioResult:
        script = self.generate_script(transcript, time_range, lang, engine)

        if engine == ENGINE_VOICEVOX:
            audio_url = self.synthesize_with_voicevox(script)
            if not audio_url:
                raise SummaryGenerationError("Failed to synthesize audio with VoiceVox")
        else:
            job = self.submit_audio_job(script, lang)
            if not job:
                raise SummaryGenerationError("Failed to submit audio job")
            self.logger.log(f"Audio job submitted: {job.get('job_id')}")
            audio_url = self.wait_for_audio_completion(job.get("events_url", ""))
            if not audio_url:
                raise SummaryGenerationError("Failed to generate audio")

        self.logger.log(f"Audio generation completed: {audio_url}")
        return AudioResult(audio_url=audio_url, script=script)
