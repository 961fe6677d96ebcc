"""Host-side collaborators: text renderer, tone gate and frame loop.

These consume the interpreter through its narrow interfaces only: the
framebuffer and its redraw flag, the sound timer, and keypad writes.
"""

import logging
import time
from typing import Callable, Iterable, List, Optional, Tuple

from .config import EmulatorConfig
from .cpu import Chip8
from .display import Framebuffer


logger = logging.getLogger(__name__)

TONE_FREQUENCY = 440


class TextRenderer:
    """Render the framebuffer as lines of text."""

    def __init__(self, config: EmulatorConfig):
        self.config = config
        self.frames_rendered = 0

    def to_text(self, framebuffer: Framebuffer) -> str:
        on, off = self.config.pixel_on, self.config.pixel_off
        return "\n".join(
            "".join(on if px else off for px in row) for row in framebuffer.rows()
        )

    def to_rgb(self, framebuffer: Framebuffer) -> List[List[Tuple[int, int, int]]]:
        """Pixels mapped to the configured foreground/background colors."""
        fg, bg = self.config.foreground, self.config.background
        return [[fg if px else bg for px in row] for row in framebuffer.rows()]

    def render(self, framebuffer: Framebuffer) -> Optional[str]:
        """Consume the redraw flag and return the screen text.

        Returns:
            Screen text, or None when no redraw was pending
        """
        if not framebuffer.consume_redraw():
            return None
        self.frames_rendered += 1
        return self.to_text(framebuffer)


class ToneGate:
    """Decide whether the fixed-frequency tone plays, and at what gain."""

    def __init__(self, config: EmulatorConfig):
        self.config = config
        self.playing = False
        self.beeps = 0

    def update(self, sound_timer: int) -> float:
        """Track the sound timer once per frame.

        Returns:
            Tone gain in 0.0-1.0 (0.0 means silent)
        """
        should_play = sound_timer > 0 and self.config.sound_enabled
        if should_play and not self.playing:
            self.beeps += 1
            logger.debug("Tone on (%d Hz)", TONE_FREQUENCY)
        elif self.playing and not should_play:
            logger.debug("Tone off")
        self.playing = should_play
        return self.config.sound_volume / 100.0 if should_play else 0.0


class HostLoop:
    """Fixed-order frame loop: input, cycles + timer tick, audio, render.

    Attributes:
        machine: Chip8 being driven
        renderer: TextRenderer consuming the framebuffer
        tone: ToneGate consuming the sound timer
        on_frame: Optional callback receiving rendered screen text
    """

    def __init__(
        self,
        machine: Chip8,
        on_frame: Optional[Callable[[str], None]] = None,
        realtime: bool = False,
    ):
        self.machine = machine
        self.renderer = TextRenderer(machine.config)
        self.tone = ToneGate(machine.config)
        self.on_frame = on_frame
        self.realtime = realtime
        self.frames = 0
        self.last_screen: Optional[str] = None

    def hold_keys(self, host_keys: Iterable[str]) -> List[str]:
        """Press host keys for the rest of the run.

        Returns:
            Host keys that have no keypad mapping
        """
        ignored = []
        for key in host_keys:
            if not self.machine.keypad.process_event(key, True):
                ignored.append(key)
        return ignored

    def step(self) -> None:
        """Run one frame."""
        self.machine.run_frame()
        self.tone.update(self.machine.state.sound_timer)
        screen = self.renderer.render(self.machine.framebuffer)
        if screen is not None:
            self.last_screen = screen
            if self.on_frame:
                self.on_frame(screen)
        self.frames += 1

    def run(self, frames: int) -> int:
        """Run a number of frames, optionally paced at config.timer_hz.

        Returns:
            Frames executed
        """
        period = self.machine.config.frame_seconds
        for _ in range(frames):
            started = time.perf_counter()
            self.step()
            if self.realtime:
                remaining = period - (time.perf_counter() - started)
                if remaining > 0:
                    time.sleep(remaining)
        return frames
