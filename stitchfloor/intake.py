"""
WIP Intake Adapter
==================

Maps the payload produced by the WIP entry screens onto a validated WipLot.

The screens send camelCase keys, keep article styles and their size/ratio
configuration in separate structures, and are loose about types (layer
counts as strings, weights as "12.5"). This adapter normalizes all of
that; WipLot validation rejects what cannot be repaired.

Expected shape::

    {
      "lotNumber": "L-042",
      "fabricName": "Cotton Pique", "fabricType": "knit", "fabricWidth": "60",
      "parsedStyles": [{"articleNumber": "8085", "styleName": "Polo T-Shirt"}],
      "articleSizes": {"8085": {"sizes": "S:M:L", "ratios": "1:2:1"}},
      "articleProcedures": {"8085": "polo"},
      "rolls": [{"rollNumber": 1, "colorName": "Blue", "layerCount": "30",
                 "markedWeight": 20.5, "actualWeight": 20.1}]
    }
"""

from typing import Any, Dict, List, Optional

from .models import ArticleConfig, Roll, WipLot


def _number(value: Any, default: float = 0.0) -> float:
    if value is None or value == "":
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


class WipIntakeAdapter:
    """Converts intake-screen payloads into WipLot models."""

    @property
    def source_type(self) -> str:
        return "wip_entry"

    def parse_payload(self, payload: Dict[str, Any]) -> WipLot:
        """Build a WipLot from a raw intake payload.

        Args:
            payload: JSON body from the WIP entry screen. Snake_case keys
                are accepted too.

        Returns:
            Validated WipLot.

        Raises:
            pydantic.ValidationError: required fields missing or unusable.
        """
        return WipLot(
            lot_number=str(self._get(payload, "lotNumber", "lot_number", default="")),
            fabric_name=self._get(payload, "fabricName", "fabric_name", default="") or "",
            fabric_type=self._get(payload, "fabricType", "fabric_type", default="") or "",
            fabric_width=self._width(self._get(payload, "fabricWidth", "fabric_width")),
            rolls=self._rolls(payload.get("rolls") or []),
            articles=self._articles(payload),
        )

    @staticmethod
    def _get(payload: Dict[str, Any], *keys: str, default: Any = None) -> Any:
        for key in keys:
            if key in payload and payload[key] is not None:
                return payload[key]
        return default

    @staticmethod
    def _width(value: Any) -> Optional[float]:
        width = _number(value, default=-1.0)
        return width if width >= 0 else None

    def _rolls(self, raw_rolls: List[Dict[str, Any]]) -> List[Roll]:
        rolls = []
        for index, raw in enumerate(raw_rolls, start=1):
            rolls.append(Roll(
                roll_number=int(_number(self._get(raw, "rollNumber", "roll_number"), index)),
                color=str(self._get(raw, "colorName", "color", default="") or "").strip(),
                layer_count=int(_number(self._get(raw, "layerCount", "layer_count"))),
                marked_weight=_number(self._get(raw, "markedWeight", "marked_weight")),
                actual_weight=_number(self._get(raw, "actualWeight", "actual_weight")),
            ))
        return rolls

    def _articles(self, payload: Dict[str, Any]) -> List[ArticleConfig]:
        if payload.get("articles"):
            return [ArticleConfig.model_validate(a) for a in payload["articles"]]

        styles = self._get(payload, "parsedStyles", "parsed_styles", default=[]) or []
        sizes = self._get(payload, "articleSizes", "article_sizes", default={}) or {}
        procedures = self._get(payload, "articleProcedures", "article_procedures", default={}) or {}

        articles = []
        for style in styles:
            number = str(self._get(style, "articleNumber", "article_number", default="")).strip()
            if not number:
                continue
            size_config = sizes.get(number) or {}
            procedure = procedures.get(number)
            if isinstance(procedure, dict):
                procedure = procedure.get("template") or procedure.get("garmentType")
            articles.append(ArticleConfig(
                article_number=number,
                style_name=self._get(style, "styleName", "style_name", default="") or "",
                garment_type=procedure or None,
                sizes=size_config.get("sizes", ""),
                ratios=size_config.get("ratios", ""),
            ))
        return articles


__all__ = ["WipIntakeAdapter"]
