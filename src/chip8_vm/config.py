"""EmulatorConfig: settings for the host loop and its collaborators.

These values steer rendering color, loop pacing and audio gain only; none of
them changes instruction semantics.
"""

import dataclasses
from dataclasses import dataclass
from typing import Tuple


Color = Tuple[int, int, int]

MIN_CYCLES_PER_FRAME = 1
MAX_CYCLES_PER_FRAME = 64


@dataclass(frozen=True)
class EmulatorConfig:
    """Immutable emulator settings.

    Attributes:
        foreground: RGB color of lit pixels
        background: RGB color of unlit pixels
        cycles_per_frame: Instructions executed per timer tick (1-64)
        timer_hz: Timer tick rate
        sound_enabled: Whether the tone gate may open
        sound_volume: Tone volume in percent (0-100)
        pixel_on: Glyph for lit pixels in text rendering
        pixel_off: Glyph for unlit pixels in text rendering
    """
    foreground: Color = (255, 255, 255)
    background: Color = (0, 0, 0)
    cycles_per_frame: int = 8
    timer_hz: int = 60
    sound_enabled: bool = True
    sound_volume: int = 100
    pixel_on: str = "#"
    pixel_off: str = "."

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        """Check every field.

        Raises:
            ValueError: On the first out-of-range field
        """
        for name in ("foreground", "background"):
            color = getattr(self, name)
            if len(color) != 3 or any(not 0 <= c <= 255 for c in color):
                raise ValueError(f"{name} must be three channels in 0-255, got {color!r}")
        if not MIN_CYCLES_PER_FRAME <= self.cycles_per_frame <= MAX_CYCLES_PER_FRAME:
            raise ValueError(
                f"cycles_per_frame must be in {MIN_CYCLES_PER_FRAME}-{MAX_CYCLES_PER_FRAME}, "
                f"got {self.cycles_per_frame}"
            )
        if self.timer_hz <= 0:
            raise ValueError(f"timer_hz must be positive, got {self.timer_hz}")
        if not 0 <= self.sound_volume <= 100:
            raise ValueError(f"sound_volume must be in 0-100, got {self.sound_volume}")
        if len(self.pixel_on) != 1 or len(self.pixel_off) != 1:
            raise ValueError("pixel_on and pixel_off must be single characters")

    def replace(self, **changes) -> "EmulatorConfig":
        """Return a validated copy with some fields changed."""
        return dataclasses.replace(self, **changes)

    @property
    def frame_seconds(self) -> float:
        return 1.0 / self.timer_hz
