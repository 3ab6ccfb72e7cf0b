import asyncio
import os
from pathlib import Path
from typing import Dict, Iterable, List

import ffmpeg
from loguru import logger

from framelabel.exceptions import ProviderException, ValidationException
from .models import Frame, ProbeResult, round_half_up

# frames past the first hour of a source are not probed
PROBE_INTERVAL = "%+3600"


class FFmpegHelper:
    """Keyframe probing and extraction through ffprobe / ffmpeg."""

    def __init__(self, ffmpeg_cmd: str = "ffmpeg", ffprobe_cmd: str = "ffprobe"):
        self.ffmpeg_cmd = ffmpeg_cmd
        self.ffprobe_cmd = ffprobe_cmd

    def _probe(self, video_path: str, **kwargs) -> dict:
        try:
            return ffmpeg.probe(video_path, cmd=self.ffprobe_cmd, **kwargs)
        except ffmpeg.Error as e:
            stderr = e.stderr.decode(errors="replace") if e.stderr else ""
            logger.error(f"ffprobe failed for {video_path}: {stderr}")
            raise ProviderException(f"ffprobe failed for {video_path}", details={"stderr": stderr[-2000:]}) from e

    async def probe(self, video_path: str) -> ProbeResult:
        """
        List the I-frames of the first video stream.

        Frames keep their decode position as fallback identifier, so ordinals
        are assigned before non-key frames are dropped.
        """
        data = await asyncio.to_thread(
            self._probe,
            video_path,
            select_streams="v:0",
            show_frames=None,
            read_intervals=PROBE_INTERVAL,
        )
        streams = data.get("streams") or []
        if not streams:
            raise ValidationException(f"{video_path} has no video stream")
        stream = streams[0]

        keyframes: List[Frame] = [
            Frame.from_probe(record, ordinal)
            for ordinal, record in enumerate(data.get("frames") or [])
            if record.get("pict_type") == "I"
        ]
        keyframes.sort(key=lambda f: f.timestamp_millis)

        duration = float(data.get("format", {}).get("duration") or stream.get("duration") or 0)
        logger.info(f"{video_path}: {len(keyframes)} keyframes, {stream.get('width')}x{stream.get('height')}")
        return ProbeResult(
            frames=keyframes,
            width=int(stream.get("width") or 0),
            height=int(stream.get("height") or 0),
            duration_millis=round_half_up(duration * 1000),
            raw={"streams": streams, "format": data.get("format", {})},
        )

    def build_extract_command(self, video_path: str, frame_numbers: Iterable[int], output_dir: str) -> List[str]:
        select = "+".join(f"eq(n\\,{n})" for n in frame_numbers)
        stream = ffmpeg.input(video_path).output(
            os.path.join(output_dir, "%d.jpg"),
            vf=f"select='{select}'",
            fps_mode="passthrough",
            **{"q:v": 1},
        )
        return stream.overwrite_output().compile(cmd=self.ffmpeg_cmd)

    async def _run_and_log(self, command: List[str], description: str):
        logger.info(f"Starting: {description}")
        process = await asyncio.create_subprocess_exec(
            *command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE
        )
        _, err = await process.communicate()
        stderr = err.decode(errors="replace").strip()
        logger.debug(f"--- {description} stderr ---\n{stderr}")
        if process.returncode != 0:
            logger.error(f"{description} failed with exit code {process.returncode}")
            raise ProviderException(
                f"{description} failed with exit code {process.returncode}",
                details={"stderr": stderr[-2000:]},
            )
        logger.info(f"{description} completed successfully.")

    async def extract(self, video_path: str, frame_numbers: Iterable[int], output_dir: str) -> Dict[int, str]:
        """
        Decode the given frames to ``output_dir`` as JPEG.

        Returns frame number -> local image path.
        """
        wanted = sorted(set(frame_numbers))
        if not wanted:
            return {}
        Path(output_dir).mkdir(parents=True, exist_ok=True)

        command = self.build_extract_command(video_path, wanted, output_dir)
        await self._run_and_log(command, f"extract {len(wanted)} frames of {video_path}")

        # the select filter emits frames in decode order as 1.jpg, 2.jpg, ...
        extracted = {}
        for i, frame_number in enumerate(wanted):
            path = os.path.join(output_dir, f"{i + 1}.jpg")
            if not os.path.exists(path):
                raise ProviderException(f"frame {frame_number} was not extracted from {video_path}")
            extracted[frame_number] = path
        return extracted
