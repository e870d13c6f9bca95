"""Agent-specific output schema validation."""

from __future__ import annotations

from typing import Any

from pydantic import ValidationError

from blackswan_mcp.models import CoreOutput, FlareOutput, OutputAgent, OutputModel

OUTPUT_MODELS: dict[OutputAgent, type[OutputModel]] = {
    "flare": FlareOutput,
    "core": CoreOutput,
}


class OutputValidationError(ValueError):
    """Raw run output does not match the agent's published schema."""

    def __init__(self, agent: str, errors: list[dict[str, Any]]) -> None:
        self.agent = agent
        self.errors = errors
        fields = sorted({".".join(str(part) for part in item.get("loc", ())) for item in errors})
        super().__init__(f"{agent} output failed schema validation: {', '.join(fields) or 'root'}")


def validate_output(agent: OutputAgent, raw_output: Any) -> FlareOutput | CoreOutput:
    """Return the typed output for `agent` or raise OutputValidationError."""
    model = OUTPUT_MODELS.get(agent)
    if model is None:
        raise OutputValidationError(agent, [{"loc": ("agent",), "msg": "no output schema"}])
    try:
        return model.model_validate(raw_output)
    except ValidationError as exc:
        raise OutputValidationError(agent, exc.errors(include_url=False)) from exc


def dump_output(output: FlareOutput | CoreOutput) -> dict[str, Any]:
    """JSON-ready dict; optional fields the payload did not carry are omitted."""
    return output.model_dump(mode="json", exclude_none=True)
