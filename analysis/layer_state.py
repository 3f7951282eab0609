"""
Layer/Filter State Manager

Owns the session's layer visibility flags and the speed threshold. The renderer
and the exporters only ever see immutable VisibilityState snapshots; all
mutation goes through the manager's operations.

Transitions:
    toggle(layer)                  flips one flag, nothing else
    set_threshold(value)           clamps to [1, 100] and notifies subscribers
    show_underserved_highlight()   highlight on, broadbandChoropleth and tracts off
    hide_underserved_highlight()   highlight off; the layers forced off stay off
"""

from dataclasses import dataclass
from types import MappingProxyType
from typing import Callable, Dict, List, Mapping, Optional

from loguru import logger

from processing.models import HIGH_SPEED_CUTOFF_MBPS, EnrichedFeature, SpeedTestTile

COUNTIES = "counties"
TRACTS = "tracts"
BROADBAND_CHOROPLETH = "broadbandChoropleth"
SPEED_TEST_OVERLAY = "speedTestOverlay"
DISCREPANCY_OVERLAY = "discrepancyOverlay"
UNDERSERVED_HIGHLIGHT = "underservedHighlight"

LAYER_NAMES = (
    COUNTIES,
    TRACTS,
    BROADBAND_CHOROPLETH,
    SPEED_TEST_OVERLAY,
    DISCREPANCY_OVERLAY,
    UNDERSERVED_HIGHLIGHT,
)

DEFAULT_VISIBILITY: Mapping[str, bool] = MappingProxyType(
    {name: name == COUNTIES for name in LAYER_NAMES}
)

# Renderer layer ids painted for each logical layer
RENDERER_LAYER_IDS: Mapping[str, tuple] = MappingProxyType(
    {
        COUNTIES: ("counties-fill", "counties-outline"),
        TRACTS: ("tracts-fill", "tracts-outline"),
        BROADBAND_CHOROPLETH: ("broadband-fill", "broadband-outline"),
        SPEED_TEST_OVERLAY: ("ookla-fill", "ookla-outline"),
        DISCREPANCY_OVERLAY: ("comparison-layer",),
        UNDERSERVED_HIGHLIGHT: ("speed-filter",),
    }
)

MIN_THRESHOLD = 1
MAX_THRESHOLD = 100
DEFAULT_THRESHOLD = 25

ThresholdListener = Callable[[float], None]


def clamp_threshold(value: float, lower: float = MIN_THRESHOLD, upper: float = MAX_THRESHOLD) -> float:
    return max(lower, min(upper, value))


def discrepancy_predicate(tile: SpeedTestTile, cutoff: float = HIGH_SPEED_CUTOFF_MBPS) -> bool:
    """Speed-test tiles measuring below the high-speed cutoff are flagged as discrepancies."""
    return tile.download_mbps < cutoff


@dataclass(frozen=True)
class VisibilityState:
    """Read-only snapshot of layer visibility and the active threshold."""

    visibility: Mapping[str, bool]
    speed_threshold: float

    def is_visible(self, layer: str) -> bool:
        return self.visibility[layer]

    def to_dict(self) -> Dict[str, object]:
        return {"layers": dict(self.visibility), "speedThreshold": self.speed_threshold}


class LayerStateManager:
    """State machine over named layer flags plus the speed threshold."""

    def __init__(
        self,
        default_threshold: float = DEFAULT_THRESHOLD,
        min_threshold: float = MIN_THRESHOLD,
        max_threshold: float = MAX_THRESHOLD,
    ):
        self.min_threshold = min_threshold
        self.max_threshold = max_threshold
        self.default_threshold = clamp_threshold(default_threshold, min_threshold, max_threshold)
        self._listeners: List[ThresholdListener] = []
        self._visibility: Dict[str, bool] = {}
        self._threshold = self.default_threshold
        self.reset()

    def reset(self) -> None:
        """Restore session-start defaults (counties on, everything else off)."""
        self._visibility = dict(DEFAULT_VISIBILITY)
        self._threshold = self.default_threshold
        logger.debug(f"🔄 Layer state reset (threshold {self._threshold} Mbps)")

    @property
    def speed_threshold(self) -> float:
        return self._threshold

    def is_visible(self, layer: str) -> bool:
        self._check_layer(layer)
        return self._visibility[layer]

    def subscribe(self, listener: ThresholdListener) -> None:
        """Register a callback invoked with the new threshold after every set_threshold()."""
        self._listeners.append(listener)

    def toggle(self, layer: str) -> bool:
        """Flip one layer flag and return its new value."""
        self._check_layer(layer)
        self._visibility[layer] = not self._visibility[layer]
        logger.debug(f"👁️ {layer} -> {'visible' if self._visibility[layer] else 'hidden'}")
        return self._visibility[layer]

    def set_threshold(self, value: float) -> float:
        """
        Clamp and store the threshold, then notify subscribers.

        Args:
            value: Requested threshold in Mbps

        Returns:
            The stored (clamped) threshold
        """
        clamped = clamp_threshold(value, self.min_threshold, self.max_threshold)
        if clamped != value:
            logger.debug(f"  ✂️ Threshold {value} clamped to {clamped}")
        self._threshold = clamped
        logger.info(f"🎚️ Speed threshold set to {clamped} Mbps")

        for listener in self._listeners:
            listener(clamped)
        return clamped

    def show_underserved_highlight(self) -> None:
        # Forces the choropleth and tract layers off
        self._visibility[UNDERSERVED_HIGHLIGHT] = True
        self._visibility[BROADBAND_CHOROPLETH] = False
        self._visibility[TRACTS] = False

    def hide_underserved_highlight(self) -> None:
        # Layers forced off by show_underserved_highlight() are not restored
        self._visibility[UNDERSERVED_HIGHLIGHT] = False

    def snapshot(self) -> VisibilityState:
        return VisibilityState(
            visibility=MappingProxyType(dict(self._visibility)),
            speed_threshold=self._threshold,
        )

    def underserved_predicate(self) -> Callable[[EnrichedFeature], bool]:
        """
        Predicate for the underserved highlight at the current threshold.

        Features without broadband data are never highlighted.
        """
        threshold = self._threshold

        def predicate(feature: EnrichedFeature) -> bool:
            down = feature.broadband_down
            return down is not None and down < threshold

        return predicate

    def filter_expression(self) -> list:
        """Renderer filter equivalent of underserved_predicate()."""
        return ["<", ["get", "broadband_down"], self._threshold]

    def renderer_visibility(self) -> Dict[str, str]:
        """Map every renderer layer id to "visible" or "none"."""
        result: Dict[str, str] = {}
        for layer, layer_ids in RENDERER_LAYER_IDS.items():
            state = "visible" if self._visibility[layer] else "none"
            for layer_id in layer_ids:
                result[layer_id] = state
        return result

    def _check_layer(self, layer: Optional[str]) -> None:
        if layer not in self._visibility:
            raise KeyError(f"Unknown layer: {layer!r} (expected one of {list(LAYER_NAMES)})")
