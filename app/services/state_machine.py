import re
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError


class BotState(str, Enum):
    IDLE = "IDLE"
    AWAITING_APPROVAL = "AWAITING_APPROVAL"
    AWAITING_MANUAL_EDIT = "AWAITING_MANUAL_EDIT"
    AWAITING_NAME = "AWAITING_NAME"
    AWAITING_PRICE = "AWAITING_PRICE"
    SELECTING_CATEGORY = "SELECTING_CATEGORY"
    AWAITING_NEW_CATEGORY_NAME = "AWAITING_NEW_CATEGORY_NAME"
    AWAITING_FINAL_CONFIRMATION = "AWAITING_FINAL_CONFIRMATION"
    SELECTING_PRODUCT_EDIT = "SELECTING_PRODUCT_EDIT"
    SELECTING_PRODUCT_DISABLE = "SELECTING_PRODUCT_DISABLE"
    SELECTING_PRODUCT_DELETE = "SELECTING_PRODUCT_DELETE"


PRODUCT_SELECTION_STATES = frozenset(
    {
        BotState.SELECTING_PRODUCT_EDIT,
        BotState.SELECTING_PRODUCT_DISABLE,
        BotState.SELECTING_PRODUCT_DELETE,
    }
)

# States where the operator is expected to press a button rather than type.
BUTTON_STATES = PRODUCT_SELECTION_STATES | {
    BotState.AWAITING_APPROVAL,
    BotState.SELECTING_CATEGORY,
    BotState.AWAITING_FINAL_CONFIRMATION,
}

# Reachable from any state through the main menu, /start or cmd_create.
GLOBAL_TARGETS = PRODUCT_SELECTION_STATES | {BotState.IDLE}

VALID_TRANSITIONS = {
    BotState.IDLE: [BotState.AWAITING_APPROVAL],
    BotState.AWAITING_APPROVAL: [BotState.AWAITING_NAME, BotState.AWAITING_MANUAL_EDIT],
    BotState.AWAITING_MANUAL_EDIT: [BotState.AWAITING_NAME],
    BotState.AWAITING_NAME: [BotState.AWAITING_PRICE],
    BotState.AWAITING_PRICE: [BotState.SELECTING_CATEGORY],
    BotState.SELECTING_CATEGORY: [BotState.AWAITING_FINAL_CONFIRMATION, BotState.AWAITING_NEW_CATEGORY_NAME],
    BotState.AWAITING_NEW_CATEGORY_NAME: [BotState.AWAITING_FINAL_CONFIRMATION],
    BotState.AWAITING_FINAL_CONFIRMATION: [],
    BotState.SELECTING_PRODUCT_EDIT: [],
    BotState.SELECTING_PRODUCT_DISABLE: [],
    BotState.SELECTING_PRODUCT_DELETE: [],
}

# Draft fields that must already be filled while the conversation sits in a state.
REQUIRED_DRAFT_FIELDS = {
    BotState.AWAITING_APPROVAL: ("image_url", "ai_description"),
    BotState.AWAITING_MANUAL_EDIT: ("image_url",),
    BotState.AWAITING_NAME: ("image_url", "ai_description"),
    BotState.AWAITING_PRICE: ("image_url", "ai_description", "name"),
    BotState.SELECTING_CATEGORY: ("image_url", "ai_description", "name", "price"),
    BotState.AWAITING_NEW_CATEGORY_NAME: ("image_url", "ai_description", "name", "price"),
    BotState.AWAITING_FINAL_CONFIRMATION: (
        "image_url",
        "ai_description",
        "name",
        "price",
        "category_id",
        "category_name",
    ),
}

PRODUCT_REQUIRED_FIELDS = ("name", "price", "image_url", "category_id")

# products.price is NUMERIC(10, 2)
MAX_PRICE = Decimal("99999999.99")


class InvalidTransitionError(Exception):
    def __init__(self, from_state: BotState, to_state: BotState):
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(f"Invalid transition: {from_state.value} -> {to_state.value}")


def coerce_state(value: Optional[str]) -> BotState:
    """Map a stored tag to a state. Missing or unknown tags mean IDLE."""
    if not value:
        return BotState.IDLE
    try:
        return BotState(value)
    except ValueError:
        return BotState.IDLE


def can_transition(from_state: BotState, to_state: BotState) -> bool:
    """Check if transition is valid. Staying put is always allowed."""
    if from_state == to_state or to_state in GLOBAL_TARGETS:
        return True
    return to_state in VALID_TRANSITIONS.get(from_state, [])


def transition(from_state: BotState, to_state: BotState) -> BotState:
    """Validate a state change. Raises InvalidTransitionError if not allowed."""
    if not can_transition(from_state, to_state):
        raise InvalidTransitionError(from_state, to_state)
    return to_state


class DraftProduct(BaseModel):
    """Product under construction, stored as JSON on the conversation row."""

    model_config = ConfigDict(extra="ignore")

    image_url: Optional[str] = None
    ai_description: Optional[str] = None
    name: Optional[str] = None
    price: Optional[Decimal] = Field(default=None, ge=0, le=MAX_PRICE)
    category_id: Optional[int] = None
    category_name: Optional[str] = None

    @classmethod
    def from_stored(cls, raw: Optional[dict]) -> Optional["DraftProduct"]:
        """Parse a stored draft. Returns None when the blob is not a valid draft."""
        if not raw:
            return cls()
        if not isinstance(raw, dict):
            return None
        try:
            return cls.model_validate(raw)
        except ValidationError:
            return None

    def to_stored(self) -> dict:
        return self.model_dump(mode="json", exclude_none=True)

    def is_empty(self) -> bool:
        return not self.to_stored()

    def missing_fields(self, fields: tuple[str, ...]) -> list[str]:
        return [field for field in fields if getattr(self, field) in (None, "")]

    def missing_for_state(self, state: BotState) -> list[str]:
        return self.missing_fields(REQUIRED_DRAFT_FIELDS.get(state, ()))

    def is_complete(self) -> bool:
        """True when the draft can be persisted as a catalog product."""
        return not self.missing_fields(PRODUCT_REQUIRED_FIELDS)


class CommandKind(str, Enum):
    CREATE = "cmd_create"
    EDIT = "cmd_edit"
    DISABLE = "cmd_disable"
    DELETE = "cmd_delete"
    APPROVE_DESCRIPTION = "approve_desc"
    EDIT_DESCRIPTION = "edit_desc"
    RETRY_DESCRIPTION = "retry_desc"
    SELECT_CATEGORY = "cat_select"
    NEW_CATEGORY = "cat_new"
    FINAL_CONFIRM = "final_confirm"
    FINAL_CANCEL = "final_cancel"
    ACT_EDIT = "act_edit"
    ACT_DISABLE = "act_disable"
    ACT_DELETE = "act_delete"


ARGUMENT_COMMANDS = (
    CommandKind.SELECT_CATEGORY,
    CommandKind.ACT_EDIT,
    CommandKind.ACT_DISABLE,
    CommandKind.ACT_DELETE,
)

# Menu command -> (selection state, per-product action)
PRODUCT_LIST_COMMANDS = {
    CommandKind.EDIT: (BotState.SELECTING_PRODUCT_EDIT, CommandKind.ACT_EDIT),
    CommandKind.DISABLE: (BotState.SELECTING_PRODUCT_DISABLE, CommandKind.ACT_DISABLE),
    CommandKind.DELETE: (BotState.SELECTING_PRODUCT_DELETE, CommandKind.ACT_DELETE),
}


@dataclass(frozen=True)
class Command:
    kind: CommandKind
    argument: Optional[int] = None

    def to_callback_data(self) -> str:
        if self.argument is None:
            return self.kind.value
        return f"{self.kind.value}_{self.argument}"


def parse_command(data: Optional[str]) -> Optional[Command]:
    """Parse button callback_data like "act_disable_42". Unknown payloads give None."""
    if not data:
        return None
    data = data.strip()

    for kind in ARGUMENT_COMMANDS:
        prefix = f"{kind.value}_"
        if data.startswith(prefix):
            raw_argument = data[len(prefix) :]
            if not raw_argument.isdigit():
                return None
            return Command(kind, int(raw_argument))

    try:
        kind = CommandKind(data)
    except ValueError:
        return None
    if kind in ARGUMENT_COMMANDS:
        return None
    return Command(kind)


PRICE_PATTERN = re.compile(r"^\d+(?:[.,]\d+)?$")
CENTS = Decimal("0.01")


def parse_price(text: Optional[str]) -> Optional[Decimal]:
    """Parse operator price input ("25.50", "25,50", "$25"). Returns None if invalid."""
    if not text:
        return None
    cleaned = text.strip().replace("$", "").replace(" ", "")
    if not PRICE_PATTERN.match(cleaned):
        return None
    value = Decimal(cleaned.replace(",", "."))
    if value > MAX_PRICE:
        return None
    price = value.quantize(CENTS, rounding=ROUND_HALF_UP)
    return price if price <= MAX_PRICE else None
