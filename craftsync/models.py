"""
Craftify Sync - Data Models

Catalog values (recipes, console commands), user-submitted reports, and the
published engine state.
"""

import hashlib
import json
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

# A crafting grid is 3x3; ingredient lists are padded to this many slots
GRID_SLOTS = 9
MAX_ALTERNATES = 4
RECENT_SEARCH_LIMIT = 10

RECIPE_RECORD_TYPE = "Recipe"
COMMAND_RECORD_TYPE = "ConsoleCommand"
REPORT_RECORD_TYPE = "PublicRecipeReport"

# Remote field names for the alternate crafting options, in slot order
ALTERNATE_INGREDIENT_FIELDS = (
    "alternateIngredients",
    "alternateIngredients1",
    "alternateIngredients2",
    "alternateIngredients3",
)
ALTERNATE_OUTPUT_FIELDS = (
    "alternateOutput",
    "alternateOutput1",
    "alternateOutput2",
    "alternateOutput3",
)


def pad_slots(ingredients: list[str]) -> tuple[str, ...]:
    """Pad (or truncate) an ingredient list to the canonical grid size."""
    slots = [str(i) if i is not None else "" for i in ingredients[:GRID_SLOTS]]
    slots.extend([""] * (GRID_SLOTS - len(slots)))
    return tuple(slots)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# Catalog
# =============================================================================

@dataclass(frozen=True)
class CraftingOption:
    """One ingredient set and the quantity it yields."""
    ingredients: tuple[str, ...]
    output: int


@dataclass(frozen=True)
class Recipe:
    """A catalog item. Identity is stable; content is replaced on refresh."""
    id: int
    name: str
    image: str
    ingredients: tuple[str, ...]
    output: int
    category: str
    alternates: tuple[CraftingOption, ...] = ()
    image_remark: Optional[str] = None
    remarks: Optional[str] = None

    def crafting_options(self) -> list[CraftingOption]:
        """Primary option first, then the alternates in slot order."""
        return [CraftingOption(self.ingredients, self.output), *self.alternates]

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "name": self.name,
            "image": self.image,
            "ingredients": list(self.ingredients),
            "output": self.output,
            "category": self.category,
            "alternates": [
                {"ingredients": list(alt.ingredients), "output": alt.output}
                for alt in self.alternates
            ],
            "image_remark": self.image_remark,
            "remarks": self.remarks,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "Recipe":
        """Create from dictionary."""
        return cls(
            id=int(d["id"]),
            name=d["name"],
            image=d["image"],
            ingredients=pad_slots(d["ingredients"]),
            output=int(d["output"]),
            category=d["category"],
            alternates=tuple(
                CraftingOption(pad_slots(alt["ingredients"]), int(alt["output"]))
                for alt in d.get("alternates", [])
            ),
            image_remark=d.get("image_remark"),
            remarks=d.get("remarks"),
        )

    @classmethod
    def from_record(cls, record: dict) -> Optional["Recipe"]:
        """
        Convert a remote record to a Recipe.

        Returns None when a required field is missing or the record name is
        not an integer identity.
        """
        fields_ = record.get("fields", {})
        try:
            recipe_id = int(record["record_name"])
        except (KeyError, TypeError, ValueError):
            return None

        name = fields_.get("name")
        image = fields_.get("image")
        ingredients = fields_.get("ingredients")
        output = fields_.get("output")
        category = fields_.get("category")
        if (
            not isinstance(name, str)
            or not isinstance(image, str)
            or not isinstance(ingredients, list)
            or not isinstance(output, int)
            or not isinstance(category, str)
        ):
            return None

        alternates = []
        for ingredients_key, output_key in zip(
            ALTERNATE_INGREDIENT_FIELDS, ALTERNATE_OUTPUT_FIELDS
        ):
            alt = fields_.get(ingredients_key)
            if not isinstance(alt, list):
                continue
            alt_output = fields_.get(output_key)
            alternates.append(CraftingOption(
                ingredients=pad_slots(alt),
                output=alt_output if isinstance(alt_output, int) else output,
            ))

        return cls(
            id=recipe_id,
            name=name,
            image=image,
            ingredients=pad_slots(ingredients),
            output=output,
            category=category,
            alternates=tuple(alternates[:MAX_ALTERNATES]),
            image_remark=fields_.get("imageremark"),
            remarks=fields_.get("remarks"),
        )


@dataclass(frozen=True)
class ConsoleCommand:
    """A reference command. Never cross-referenced with recipes."""
    name: str
    description: str
    works_in_bedrock: bool
    works_in_java: bool
    op_level_bedrock: Optional[int] = None
    op_level_java: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "description": self.description,
            "works_in_bedrock": self.works_in_bedrock,
            "works_in_java": self.works_in_java,
            "op_level_bedrock": self.op_level_bedrock,
            "op_level_java": self.op_level_java,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "ConsoleCommand":
        return cls(
            name=d["name"],
            description=d["description"],
            works_in_bedrock=bool(d["works_in_bedrock"]),
            works_in_java=bool(d["works_in_java"]),
            op_level_bedrock=d.get("op_level_bedrock"),
            op_level_java=d.get("op_level_java"),
        )

    @classmethod
    def from_record(cls, record: dict) -> Optional["ConsoleCommand"]:
        """Convert a remote record; None if name or description is missing."""
        fields_ = record.get("fields", {})
        name = fields_.get("name")
        description = fields_.get("description")
        if not isinstance(name, str) or not isinstance(description, str):
            return None
        return cls(
            name=name,
            description=description,
            works_in_bedrock=bool(fields_.get("worksInBedrock", False)),
            works_in_java=bool(fields_.get("worksInJava", False)),
            op_level_bedrock=fields_.get("opLevelBedrock"),
            op_level_java=fields_.get("opLevelJava"),
        )


# =============================================================================
# Reports
# =============================================================================

class ReportKind(Enum):
    """Kind of user report; values are the strings stored remotely."""
    MISSING_RECIPE = "Report Missing Recipe"
    RECIPE_ERROR = "Report Recipe Error"

    @classmethod
    def parse(cls, value: "ReportKind | str") -> "ReportKind":
        """Accept a member, its stored value, or its name ('missing_recipe', 'recipe-error')."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            pass
        try:
            return cls[str(value).upper().replace("-", "_")]
        except KeyError:
            raise ValueError(f"Unknown report kind: {value}") from None


class ReportStatus(Enum):
    """Report status, changed only by the back office."""
    PENDING = "Pending"
    RESOLVED = "Resolved"
    REJECTED = "Rejected"


@dataclass(frozen=True)
class Report:
    """A user-submitted report and its server-tracked status."""
    kind: ReportKind
    recipe_name: str
    category: str
    description: str
    status: ReportStatus = ReportStatus.PENDING
    created_at: datetime = field(default_factory=utcnow)
    local_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    record_id: Optional[str] = None
    recipe_id: Optional[int] = None

    def with_status(self, status: ReportStatus) -> "Report":
        return replace(self, status=status)

    def to_fields(self) -> dict[str, Any]:
        """Remote record fields."""
        return {
            "localID": self.local_id,
            "reportType": self.kind.value,
            "recipeName": self.recipe_name,
            "category": self.category,
            "recipeID": self.recipe_id,
            "description": self.description,
            "timestamp": self.created_at.isoformat(),
            "status": self.status.value,
        }

    @classmethod
    def from_record(cls, record: dict) -> Optional["Report"]:
        """Convert a remote record; None if a required field is missing or invalid."""
        fields_ = record.get("fields", {})
        try:
            return cls(
                kind=ReportKind(fields_["reportType"]),
                recipe_name=fields_["recipeName"],
                category=fields_["category"],
                description=fields_["description"],
                status=ReportStatus(fields_["status"]),
                created_at=datetime.fromisoformat(fields_["timestamp"]),
                local_id=fields_["localID"],
                record_id=record["record_name"],
                recipe_id=fields_.get("recipeID"),
            )
        except (KeyError, TypeError, ValueError):
            return None

    def to_dict(self) -> dict:
        """Convert to dictionary for the local mirror."""
        return {
            "kind": self.kind.value,
            "recipe_name": self.recipe_name,
            "category": self.category,
            "description": self.description,
            "status": self.status.value,
            "created_at": self.created_at.isoformat(),
            "local_id": self.local_id,
            "record_id": self.record_id,
            "recipe_id": self.recipe_id,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "Report":
        """Create from dictionary."""
        return cls(
            kind=ReportKind(d["kind"]),
            recipe_name=d["recipe_name"],
            category=d["category"],
            description=d["description"],
            status=ReportStatus(d["status"]),
            created_at=datetime.fromisoformat(d["created_at"]),
            local_id=d["local_id"],
            record_id=d.get("record_id"),
            recipe_id=d.get("recipe_id"),
        )


# =============================================================================
# Results
# =============================================================================

@dataclass
class SyncResult:
    """Result of a sync operation."""
    success: bool
    items_processed: int = 0
    items_failed: int = 0
    errors: list[str] = field(default_factory=list)
    duration_seconds: float = 0.0
    skipped: bool = False
    timestamp: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class StepResult:
    """Outcome of one independent step of a multi-step clear."""
    name: str
    success: bool
    error: Optional[str] = None


@dataclass
class ClearAllResult:
    """Per-step outcome of clearing all data; steps do not roll each other back."""
    steps: list[StepResult] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return all(step.success for step in self.steps)

    @property
    def failed_steps(self) -> list[StepResult]:
        return [step for step in self.steps if not step.success]

    def __bool__(self) -> bool:
        return self.success


# =============================================================================
# Published State
# =============================================================================

@dataclass(frozen=True)
class SyncState:
    """
    Immutable snapshot of everything the presentation layer reads.

    The engine publishes a new snapshot per transition, so a reader never
    observes a partially applied update.
    """
    recipes: tuple[Recipe, ...] = ()
    commands: tuple[ConsoleCommand, ...] = ()
    favorites: frozenset[int] = frozenset()
    recent_searches: tuple[str, ...] = ()
    reports: tuple[Report, ...] = ()
    is_loading: bool = False
    is_manual_syncing: bool = False
    is_connected: bool = True
    last_updated: Optional[datetime] = None
    error_message: Optional[str] = None
    status_message: Optional[str] = None
    last_report_status_fetch_time: Optional[datetime] = None
    notifications_enabled: bool = False
    is_push_registered: bool = False


def checksum(data: Any) -> str:
    """SHA256 of the canonical JSON form of data."""
    return hashlib.sha256(
        json.dumps(data, sort_keys=True, default=str).encode()
    ).hexdigest()
