"""
Data models for the Relations Lambda.

This module defines the records read from the relations table, the contract a
record type must satisfy to be looked up and listed generically, and the
request/response shapes exchanged with the Lambda host. Using dataclasses,
Protocols and TypedDicts keeps these contracts explicit and checkable by mypy.
"""

from dataclasses import MISSING, dataclass, field, fields, replace
from typing import (
    Any,
    ClassVar,
    Dict,
    Generic,
    List,
    Optional,
    Protocol,
    Type,
    TypedDict,
    TypeVar,
    Union,
)

from mypy_boto3_dynamodb.type_defs import AttributeValueTypeDef

# The store's untyped item representation: {"pk": {"S": "..."}, ...}
AttributeMap = Dict[str, AttributeValueTypeDef]

# Fixed attribute names for the composite primary key.
PARTITION_KEY_ATTRIBUTE = "pk"
SORT_KEY_ATTRIBUTE = "sk"

T = TypeVar("T", bound="Storable")
R = TypeVar("R", bound="StoreRecord")


class Storable(Protocol):
    """
    The identity capability every record type must provide.

    Any type satisfying this protocol can be fetched with `core.get_by_key`
    and listed with `core.query_by_classification` without writing any
    per-type access code.
    """

    classification_attribute: ClassVar[str]
    CLASSIFICATION: ClassVar[str]

    def partition_key(self) -> str:
        ...

    def sort_key(self) -> str:
        ...

    def classification(self) -> str:
        ...

    @classmethod
    def empty(cls: Type[T]) -> T:
        ...


@dataclass
class StoreRecord:
    """
    Base dataclass implementing `Storable` for items keyed by pk/sk.

    Subclasses declare their classification tag and any extra attributes;
    the identity hooks and the empty constructor come from here.

    Attributes:
        pk: Partition key.
        sk: Sort key.
        itemtype: Classification tag, indexed by the "itemtype-index" GSI.
    """

    classification_attribute: ClassVar[str] = "itemtype"
    CLASSIFICATION: ClassVar[str] = ""

    pk: str
    sk: str
    itemtype: str

    def partition_key(self) -> str:
        return self.pk

    def sort_key(self) -> str:
        return self.sk

    def classification(self) -> str:
        return getattr(self, self.classification_attribute)

    @classmethod
    def empty(cls: Type[R]) -> R:
        """Returns a record whose required fields are all empty strings."""
        required = {
            f.name: ""
            for f in fields(cls)
            if f.init and f.default is MISSING and f.default_factory is MISSING
        }
        return cls(**required)

    def with_identity(self: R, partition_key: str, sort_key: str) -> R:
        return replace(self, pk=partition_key, sk=sort_key)

    def with_classification(self: R, classification: str) -> R:
        return replace(self, **{self.classification_attribute: classification})

    def to_dict(self) -> Dict[str, Any]:
        """Plain dictionary for the response payload; unset optional fields are omitted."""
        result: Dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if value is None:
                continue
            result[f.name] = value
        return result


@dataclass
class Dataset(StoreRecord):
    """
    A dataset entry in the relations table.

    Attributes:
        created_at: Optional ISO 8601 creation timestamp.
    """

    CLASSIFICATION: ClassVar[str] = "dataset"

    created_at: Optional[str] = None


@dataclass
class QueryPage(Generic[T]):
    """
    One page of decoded query results.

    Attributes:
        items: Records in the order the store returned them.
        last_evaluated_key: The store's continuation key, present only when
                            more results exist beyond this page. Pass it back
                            as `exclusive_start_key` to read the next page.
    """

    items: List[T] = field(default_factory=list)
    last_evaluated_key: Optional[AttributeMap] = None

    @property
    def has_more(self) -> bool:
        return self.last_evaluated_key is not None


# --- Inbound actions ---


@dataclass(frozen=True)
class ListByClassification:
    """List every record of the target type's classification (one page)."""

    next_token: Optional[str] = None


@dataclass(frozen=True)
class GetByKey:
    """Fetch a single record by its exact composite key."""

    partition_key: str
    sort_key: str


ActionRequest = Union[ListByClassification, GetByKey]


class ActionEvent(TypedDict, total=False):
    """
    The raw invocation payload supplied by the Lambda host.

    `action` is either a bare action name ("GetDatasets") or a single-entry
    mapping from action name to its parameters ({"GetByKey": {"pk": .., "sk": ..}}).
    The flat form ({"action": "GetByKey", "pk": .., "sk": ..}) is also accepted.
    """

    action: Union[str, Dict[str, Any]]
    pk: str
    sk: str
    next_token: str


# --- Outbound response ---


@dataclass
class ResponseEnvelope(Generic[R]):
    """
    The payload returned to the Lambda host.

    Attributes:
        message: For GetByKey, the echoed partition key; otherwise empty.
        dataset: The fetched record, or the type's empty record when the
                 action was a listing or the key did not exist.
        datasets: The listed records; empty for GetByKey.
        next_token: Continuation token when the listing has more pages.
    """

    message: str
    dataset: R
    datasets: List[R] = field(default_factory=list)
    next_token: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "message": self.message,
            "dataset": self.dataset.to_dict(),
            "datasets": [record.to_dict() for record in self.datasets],
        }
        if self.next_token is not None:
            body["next_token"] = self.next_token
        return body
