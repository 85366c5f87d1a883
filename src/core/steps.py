"""Step definitions: one pydantic model per browser action."""

from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from .errors import StepExecutionFailure, UnsupportedAction


class StepBase(BaseModel):
    """Fields shared by every step. YAML keys are camelCase."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
        coerce_numbers_to_str=True,
        frozen=True,
    )

    action: str
    name: Optional[str] = None
    timeout_ms: Optional[int] = Field(default=None, ge=0)

    @field_validator("timeout_ms", "ms", "file", "full_page", "key", mode="before", check_fields=False)
    @classmethod
    def _blank_is_default(cls, value: Any, info) -> Any:
        """Placeholders that rendered to "" fall back to the field default."""
        field = cls.model_fields[info.field_name]
        if value in ("", None) and not field.is_required():
            return field.default
        return value


class NavigateStep(StepBase):
    action: Literal["navigate", "open"]
    url: str = ""
    wait_until: Literal["load", "domcontentloaded", "networkidle", "commit"] = "domcontentloaded"


class ClickStep(StepBase):
    action: Literal["click"]
    selector: str = ""


class FillStep(StepBase):
    action: Literal["fill"]
    selector: str = ""
    value: str = ""


class PressStep(StepBase):
    action: Literal["press"]
    selector: str = ""
    key: str


class CheckStep(StepBase):
    """check / uncheck a checkbox or radio."""
    action: Literal["check", "uncheck"]
    selector: str = ""


class SelectStep(StepBase):
    action: Literal["select"]
    selector: str = ""
    value: Union[str, list[str]]


class WaitForSelectorStep(StepBase):
    action: Literal["waitForSelector"]
    selector: str = ""
    state: Literal["attached", "detached", "visible", "hidden"] = "visible"


class WaitStep(StepBase):
    action: Literal["wait"]
    ms: int = Field(default=1000, ge=0)


class ScreenshotStep(StepBase):
    action: Literal["screenshot"]
    file: Optional[str] = None
    full_page: bool = True
    key: str = "screenshot"


class CopyStep(StepBase):
    action: Literal["copy"]
    selector: str = ""
    attribute: Optional[str] = None
    key: str = "copied_value"


class UploadStep(StepBase):
    action: Literal["upload"]
    selector: str = ""
    file: Union[str, list[str]]


class EvalStep(StepBase):
    action: Literal["eval"]
    script: str = ""


class PointerStep(StepBase):
    """focus / hover an element."""
    action: Literal["focus", "hover"]
    selector: str = ""


Step = Annotated[
    Union[
        NavigateStep,
        ClickStep,
        FillStep,
        PressStep,
        CheckStep,
        SelectStep,
        WaitForSelectorStep,
        WaitStep,
        ScreenshotStep,
        CopyStep,
        UploadStep,
        EvalStep,
        PointerStep,
    ],
    Field(discriminator="action"),
]

STEP_ADAPTER: TypeAdapter = TypeAdapter(Step)

SUPPORTED_ACTIONS = frozenset({
    "navigate", "open", "click", "fill", "press", "check", "uncheck",
    "select", "waitForSelector", "wait", "screenshot", "copy", "upload",
    "eval", "focus", "hover",
})


def step_action(raw: dict[str, Any]) -> Any:
    """Action identifier of a raw step (`action`, falling back to `type`)."""
    return raw.get("action") or raw.get("type")


def parse_step(raw: dict[str, Any], step_index: Optional[int] = None) -> StepBase:
    """
    Validate a rendered step record into its action model.

    Raises:
        UnsupportedAction: action identifier is missing or unknown
        StepExecutionFailure: known action with invalid fields
    """
    action = step_action(raw)
    if not isinstance(action, str) or action not in SUPPORTED_ACTIONS:
        raise UnsupportedAction(action, context={"step_index": step_index})

    data = {key: value for key, value in raw.items() if key != "type"}
    data["action"] = action

    try:
        return STEP_ADAPTER.validate_python(data)
    except ValidationError as e:
        raise StepExecutionFailure(
            f"Invalid {action} step: {e}",
            action=action,
            selector=raw.get("selector"),
            step_index=step_index,
            retryable=False,
        ) from e
