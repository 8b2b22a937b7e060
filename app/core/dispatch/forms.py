# app/core/dispatch/forms.py
"""
Dispatch form kinds and their field schemas.

Every form kind is a tagged variant: one ``FormSchema`` declares the header
fields, the quantity fields, how the derived total is computed, which
fields are required, and how the draft is addressed locally (cache key)
and remotely (ledger ``type`` tag and lookup identifier).  All behaviour
elsewhere is driven from these schemas; nothing is duplicated per kind.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Mapping

from app.core.dispatch.weights import OIL_WEIGHTS, SOAP_WEIGHTS


class FormKind(str, Enum):
    OIL = "oil"
    SOAP = "soap"
    DOC = "doc"

    @property
    def ledger_type(self) -> str:
        """Discriminator sent to the ledger (``oil_dispatch`` etc.)"""
        return f"{self.value}_dispatch"


class TotalRule(str, Enum):
    WEIGHTED = "weighted"      # Σ quantity × unit mass / 1000
    DIRECT_SUM = "direct_sum"  # Σ mass sub-fields (already in MT)


@dataclass(frozen=True)
class FieldSpec:
    """A header field: scalar string with an optional default and option list."""
    name: str
    label: str
    default: str = ""
    options: tuple[str, ...] = ()


@dataclass(frozen=True)
class FormSchema:
    kind: FormKind
    title: str
    headers: tuple[FieldSpec, ...]
    quantity_keys: tuple[str, ...]
    quantity_labels: Mapping[str, str]
    total_field: str
    total_label: str
    total_rule: TotalRule
    weights: Mapping[str, Decimal]
    required: tuple[str, ...]
    cache_key: str
    lookup_field: str

    def __post_init__(self) -> None:
        header_names = {f.name for f in self.headers}
        overlap = header_names & set(self.quantity_keys)
        if overlap:
            raise ValueError(f"{self.kind.value}: header and quantity fields overlap: {sorted(overlap)}")
        if self.total_field in header_names or self.total_field in self.quantity_keys:
            raise ValueError(f"{self.kind.value}: total field '{self.total_field}' must be machine-written only")
        unknown_required = set(self.required) - header_names
        if unknown_required:
            raise ValueError(f"{self.kind.value}: required fields not declared: {sorted(unknown_required)}")
        if self.lookup_field not in header_names:
            raise ValueError(f"{self.kind.value}: lookup field '{self.lookup_field}' not declared")
        if self.total_rule is TotalRule.WEIGHTED:
            missing = set(self.quantity_keys) - set(self.weights)
            if missing:
                raise ValueError(f"{self.kind.value}: no unit mass for {sorted(missing)}")

    @property
    def header_names(self) -> tuple[str, ...]:
        return tuple(f.name for f in self.headers)

    def is_header(self, name: str) -> bool:
        return any(f.name == name for f in self.headers)

    def is_quantity(self, name: str) -> bool:
        return name in self.quantity_keys

    def is_editable(self, name: str) -> bool:
        return self.is_header(name) or self.is_quantity(name)

    def label(self, name: str) -> str:
        for f in self.headers:
            if f.name == name:
                return f.label
        if name == self.total_field:
            return self.total_label
        return self.quantity_labels.get(name, name)

    def header_defaults(self) -> dict[str, str]:
        return {f.name: f.default for f in self.headers}


# ============================================================================
# FIELD DEFINITIONS
# ============================================================================

_DISPATCH_TO_OPTIONS = ("CUSTOMER", "DEPOT", "EXPORT")

_OIL_TRUCK_STATUS = ("Loaded", "In Transit", "Delivered", "Returned")
_OIL_TRANSPORTERS = ("TransCorp", "LogiFreight", "SwiftTrans", "GlobalMove")
_OIL_CUSTOMER_DEPOTS = ("Depot A", "Depot B", "Customer Alpha", "Customer Beta", "Export Hub")

_MILL_TRUCK_STATUS = ("GATE PASS ISSUED", "Loaded", "In Transit", "Delivered", "Returned")
_MILL_TRANSPORTERS = ("SELF TRUCK", "MOUNT MERU", "Other")
_MILL_CUSTOMER_DEPOTS = ("LFL", "FINE FISH", "Depot A", "Depot B")


OIL_SCHEMA = FormSchema(
    kind=FormKind.OIL,
    title="Oil Dispatch",
    headers=(
        FieldSpec("date", "Date"),
        FieldSpec("serialNo", "Serial No"),
        FieldSpec("salesOrderNo", "Sales Order No"),
        FieldSpec("ticketNo", "Ticket No"),
        FieldSpec("invoiceNo", "Invoice No"),
        FieldSpec("truckNo", "Truck No"),
        FieldSpec("driverNo", "Driver No"),
        FieldSpec("transporter", "Transporter", options=_OIL_TRANSPORTERS),
        FieldSpec("dispatchTo", "Dispatch To", default="CUSTOMER", options=_DISPATCH_TO_OPTIONS),
        FieldSpec("customerDepotName", "Customer/Depot Name", options=_OIL_CUSTOMER_DEPOTS),
        FieldSpec("truckStatus", "Truck Status", default="Loaded", options=_OIL_TRUCK_STATUS),
        FieldSpec("gatePassNo", "Gate Pass No"),
    ),
    quantity_keys=tuple(OIL_WEIGHTS),
    quantity_labels=MappingProxyType({}),
    total_field="mt",
    total_label="Total MT",
    total_rule=TotalRule.WEIGHTED,
    weights=OIL_WEIGHTS,
    required=("date", "serialNo", "dispatchTo"),
    cache_key="oilDispatchForm",
    lookup_field="serialNo",
)

SOAP_SCHEMA = FormSchema(
    kind=FormKind.SOAP,
    title="Soap Dispatch",
    headers=(
        FieldSpec("date", "Date"),
        FieldSpec("serialNo", "Serial No"),
        FieldSpec("ebm", "EBM"),
        FieldSpec("ticketNo", "Ticket No"),
        FieldSpec("salesOrderNo", "Sales Order No"),
        FieldSpec("truckNo", "Truck No"),
        FieldSpec("driverNo", "Driver No"),
        FieldSpec("transporter", "Transporter", options=_MILL_TRANSPORTERS),
        FieldSpec("dispatchTo", "Dispatch To", default="CUSTOMER", options=_DISPATCH_TO_OPTIONS),
        FieldSpec("customerDepotName", "Customer/Depot Name", options=_MILL_CUSTOMER_DEPOTS),
        FieldSpec("truckStatus", "Truck Status", default="GATE PASS ISSUED", options=_MILL_TRUCK_STATUS),
        FieldSpec("gatePassNo", "Gate Pass No"),
    ),
    quantity_keys=tuple(SOAP_WEIGHTS),
    quantity_labels=MappingProxyType({}),
    total_field="mt",
    total_label="Total MT",
    total_rule=TotalRule.WEIGHTED,
    weights=SOAP_WEIGHTS,
    required=("date", "serialNo", "dispatchTo"),
    cache_key="soapDispatchForm",
    lookup_field="serialNo",
)

DOC_SCHEMA = FormSchema(
    kind=FormKind.DOC,
    title="DOC Dispatch",
    headers=(
        FieldSpec("date", "Date"),
        FieldSpec("truckNo", "Truck No"),
        FieldSpec("ticketNo", "Ticket No"),
        FieldSpec("salesOrderNo", "Sales Order No"),
        FieldSpec("invoiceNo", "Invoice No"),
        FieldSpec("transporter", "Transporter", options=_MILL_TRANSPORTERS),
        FieldSpec("driverNo", "Driver No"),
        FieldSpec("dispatchTo", "Dispatch To", default="CUSTOMER", options=_DISPATCH_TO_OPTIONS),
        FieldSpec("customerDepotName", "Customer/Depot Name", options=_MILL_CUSTOMER_DEPOTS),
        FieldSpec("truckStatus", "Truck Status", default="GATE PASS ISSUED", options=_MILL_TRUCK_STATUS),
    ),
    quantity_keys=("soyaDocMT", "sunflowerDocMT"),
    quantity_labels=MappingProxyType({
        "soyaDocMT": "Soya DOC (MT)",
        "sunflowerDocMT": "Sunflower DOC (MT)",
    }),
    total_field="totalMT",
    total_label="Total MT",
    total_rule=TotalRule.DIRECT_SUM,
    weights=MappingProxyType({}),
    required=("date", "ticketNo", "dispatchTo"),
    cache_key="docDispatchForm",
    lookup_field="ticketNo",
)


FORM_SCHEMAS: Mapping[FormKind, FormSchema] = MappingProxyType({
    FormKind.OIL: OIL_SCHEMA,
    FormKind.SOAP: SOAP_SCHEMA,
    FormKind.DOC: DOC_SCHEMA,
})


def get_schema(kind: FormKind | str) -> FormSchema:
    """
    Look up the schema for a form kind.

    Raises:
        ValueError: If ``kind`` is not a known form kind
    """
    try:
        return FORM_SCHEMAS[FormKind(kind)]
    except ValueError:
        available = ", ".join(k.value for k in FormKind)
        raise ValueError(f"Unknown form kind '{kind}'. Available kinds: {available}") from None
