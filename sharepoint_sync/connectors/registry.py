from __future__ import annotations

from collections.abc import Iterable, Mapping

from ..config.loader import ChunkOverride
from ..db.store import DestinationStore
from ..errors import UnknownWorksheetError
from ..models.worksheet_schema import UpsertPolicy, WorksheetSchema
from .base import QAConnector, WorksheetConnector

"""Known worksheets of the Lawley / Mohadin project workbooks.

Column maps read ``destination column: (record field, fallback field, ...)``.
Header text is normalized before it gets here, e.g. "Label 1" -> ``label_1``,
"1Map NAD ID" -> ``1map_nad_id``.
"""

__all__ = [
    "SCHEMAS",
    "DEFAULT_WORKSHEETS",
    "get_schema",
    "build_connector",
    "build_connectors",
]


def _same(*names: str) -> dict[str, tuple[str, ...]]:
    return {n: (n,) for n in names}


_LOCATION_FIELDS = ("pon_no", "zone_no", "subplace", "mainplce", "mun")
_AUDIT_FIELDS = ("datecrtd", "crtdby", "date_edt", "editby", "comments")

HLD_POLE = WorksheetSchema(
    name="HLD_Pole",
    table="sharepoint_hld_pole",
    key_column="label_1",
    key_fields=("label_1",),
    columns=_same(
        "type_1", "subtyp_1", "spec_1", "dim1", "dim2", "cblcpty1", "conntr1",
        "status", "cmpownr", "lat", "lon", "address",
        *_LOCATION_FIELDS, *_AUDIT_FIELDS,
    ),
    expected_rows=4000,
)

HLD_HOME = WorksheetSchema(
    name="HLD_Home",
    table="sharepoint_hld_home",
    key_column="label",
    key_fields=("label",),
    columns=_same(
        "type", "subtyp", "spec", "dim1", "dim2", "cblcpty", "conntr", "ntwrkptn",
        "cmpownr", "strtfeat", "endfeat", "lat", "lon", "address",
        *_LOCATION_FIELDS, *_AUDIT_FIELDS,
    ),
    expected_rows=23000,
)

TRACKER_POLE = WorksheetSchema(
    name="Tracker_Pole",
    table="sharepoint_tracker_pole",
    key_column="label_1",
    key_fields=("label_1",),
    columns=_same("pon_no", "zone_no"),
    expected_rows=4900,
)

# row 1 of Tracker_Home is a formula/totals row; headers live on row 2
TRACKER_HOME = WorksheetSchema(
    name="Tracker_Home",
    table="sharepoint_tracker_home",
    key_column="label",
    key_fields=("label",),
    columns={
        **_same(
            "pon_no", "zone_no", "home_sign_up_date", "home_all_dates", "home_drop_date",
            "home_install_complete_date", "home_connected_date",
        ),
        "drop_install_status": ("drop_install", "drop_install_status"),
        **_same("hld_pon", "ops_pon", "pon_optical_status"),
    },
    header_row=2,
    insert_chunk=50,
    update_chunk=50,
    expected_rows=23000,
)

NOKIA_EXP = WorksheetSchema(
    name="Nokia_Exp",
    table="sharepoint_nokia_exp",
    key_column="drop_number",
    key_fields=("drop_number",),
    columns={
        **_same("serial_number", "timestamp", "olt_address", "ont_rx_sig_dbm"),
        "link_budget_ont_to_olt_db": ("link_budget_ont_olt_db", "link_budget_ont_to_olt_db"),
        "olt_rx_sig_dbm": ("olt_rx_sig_dbm",),
        "link_budget_olt_to_ont_db": ("link_budget_olt_ont_db", "link_budget_olt_to_ont_db"),
        **_same("status", "latitude", "longitude", "current_ont_rx", "team", "date"),
    },
    expected_rows=1700,
)

_ONEMAP_COMMON = {
    "onemap_nad_id": ("1map_nad_id", "onemap_nad_id"),
    **_same(
        "job_id", "status", "flow_name_groups", "site", "sections", "pons",
        "location_address",
    ),
}

# very wide sheet (100+ columns)
ONEMAP_INS = WorksheetSchema(
    name="1Map_Ins",
    table="sharepoint_1map_ins",
    key_column="property_id",
    key_fields=("property_id",),
    columns={
        **_ONEMAP_COMMON,
        **_same(
            "actual_device_location_latitude", "actual_device_location_longitude",
            "lst_mod_by", "lst_mod_dt", "date_status_changed", "pole_number",
            "drop_number", "language", "survey_date",
        ),
    },
    insert_chunk=25,
    update_chunk=25,
    expected_rows=21000,
)

ONEMAP_POLE = WorksheetSchema(
    name="1Map_Pole",
    table="sharepoint_1map_pole",
    key_column="property_id",
    key_fields=("onemapfid", "property_id"),
    columns={
        **_ONEMAP_COMMON,
        "actual_device_location_latitude": (
            "planned_location_latitude", "actual_device_location_latitude",
        ),
        "actual_device_location_longitude": (
            "planned_location_longitude", "actual_device_location_longitude",
        ),
        **_same("lst_mod_by", "lst_mod_dt", "date_status_changed"),
        "pole_number": ("label", "pole_number"),
        **_same("language", "survey_date"),
    },
    expected_rows=5300,
)

_QA_STEPS = {
    "step_1_property_frontage": (
        "step_1_property_frontage_house_street_number_visible", "step_1_property_frontage",
    ),
    "step_2_location_on_wall": ("step_2_location_on_wall_before_install",),
    "step_3_outside_cable_span": ("step_3_outside_cable_span_pole_pigtail_screw",),
    "step_4_home_entry_outside": ("step_4_home_entry_point_outside",),
    "step_5_home_entry_inside": ("step_5_home_entry_point_inside",),
    "step_6_fibre_entry_to_ont": ("step_6_fibre_entry_to_ont_after_install",),
    "step_7_work_area_completion": ("step_7_overall_work_area_after_completion",),
    "step_8_ont_barcode": ("step_8_ont_barcode_scan_barcode_photo_of_label",),
    "step_9_mini_ups_serial": ("step_9_mini_ups_serial_number_gizzu",),
    "step_10_powermeter_before_activation": ("step_10_powermeter_at_ont_before_activation",),
    "step_11_active_broadband_light": ("step_11_active_broadband_light",),
    "step_12_customer_signature": ("step_12_customer_signature",),
}

_QA_TRAILER = {
    "completed_photos": ("completed_photos",),
    "outstanding_photos": ("x_outstanding_photos", "outstanding_photos"),
    "user_name": ("user", "user_name"),
    "outstanding_photos_loaded_1map": ("outstanding_photos_loaded_onto_1map",),
    "qa_completed_loaded_sp": ("qa_completed_loaded_to_sp",),
    "comment": ("comment",),
}

_LAWLEY_QA_COLUMNS = {
    "date": ("date",),
    "source": ("_source",),
    **_QA_STEPS,
    **_QA_TRAILER,
}

# the Mohadin sheet dropped a few steps at some point, so older exports number
# the later steps one or two lower
_MOHADIN_QA_COLUMNS = {
    "date": ("date",),
    "source": ("_source",),
    "zone_no": ("zone", "zone_no"),
    "pon_no": ("pon", "pon_no"),
    **_QA_STEPS,
    "step_8_ont_barcode": (
        "step_8_ont_barcode_scan_barcode_photo_of_label",
        "step_7_ont_barcode_scan_barcode_photo_of_label",
    ),
    "step_9_mini_ups_serial": (
        "step_9_mini_ups_serial_number_gizzu", "step_8_mini_ups_serial_number_gizzu",
    ),
    "step_10_powermeter_before_activation": (
        "step_10_powermeter_at_ont_before_activation",
        "step_9_powermeter_at_ont_before_activation",
    ),
    "step_12_customer_signature": (
        "step_12_customer_signature", "step_10_customer_signature",
    ),
    **_QA_TRAILER,
}


def _qa(name: str, table: str, file_key: str, source_tag: str, columns, expected: int) -> WorksheetSchema:
    return WorksheetSchema(
        name=name,
        table=table,
        key_column="drop_number",
        key_fields=("drop_number",),
        columns=columns,
        policy=UpsertPolicy.APPEND_ONLY,
        insert_chunk=100,
        update_chunk=100,
        file_key=file_key,
        expected_rows=expected,
        source_tag=source_tag,
    )


LAWLEY_ACTIVATIONS = _qa(
    "Lawley Activations", "sharepoint_lawley_qa", "lawley", "activations", _LAWLEY_QA_COLUMNS, 1500
)
LAWLEY_HISTORICAL = _qa(
    "Lawley Historical", "sharepoint_lawley_qa", "lawley", "historical", _LAWLEY_QA_COLUMNS, 1500
)
MOHADIN_ACTIVATIONS = _qa(
    "Mohadin Activations", "sharepoint_mohadin_qa", "mohadin", "mohadin_activations", _MOHADIN_QA_COLUMNS, 300
)
MOHADIN_HISTORICAL = _qa(
    "Mohadin Historical", "sharepoint_mohadin_qa", "mohadin", "mohadin_historical", _MOHADIN_QA_COLUMNS, 300
)

SCHEMAS: dict[str, WorksheetSchema] = {
    s.name: s
    for s in (
        HLD_POLE, HLD_HOME, TRACKER_POLE, TRACKER_HOME, NOKIA_EXP, ONEMAP_INS, ONEMAP_POLE,
        LAWLEY_ACTIVATIONS, LAWLEY_HISTORICAL, MOHADIN_ACTIVATIONS, MOHADIN_HISTORICAL,
    )
}

# historical QA sheets are one-off loads: synced only when named explicitly
DEFAULT_WORKSHEETS: list[str] = [
    "HLD_Pole", "HLD_Home", "Tracker_Pole", "Tracker_Home", "Nokia_Exp",
    "1Map_Ins", "1Map_Pole", "Lawley Activations", "Mohadin Activations",
]


def get_schema(name: str) -> WorksheetSchema:
    try:
        return SCHEMAS[name]
    except KeyError:
        raise UnknownWorksheetError(
            f"unknown worksheet: {name!r} (known: {', '.join(SCHEMAS)})"
        ) from None


def build_connector(
    schema: WorksheetSchema,
    store: DestinationStore,
    *,
    insert_chunk: int | None = None,
    update_chunk: int | None = None,
    progress_interval: int = 500,
) -> WorksheetConnector:
    cls = QAConnector if schema.policy is UpsertPolicy.APPEND_ONLY else WorksheetConnector
    return cls(
        schema,
        store,
        insert_chunk=insert_chunk,
        update_chunk=update_chunk,
        progress_interval=progress_interval,
    )


def build_connectors(
    store: DestinationStore,
    names: Iterable[str] | None = None,
    *,
    chunk_overrides: Mapping[str, ChunkOverride] | None = None,
    progress_interval: int = 500,
) -> list[WorksheetConnector]:
    """Connectors for ``names`` (default set when None), in the given order.

    Raises:
        UnknownWorksheetError: a name is not a known worksheet
    """
    overrides = chunk_overrides or {}
    connectors = []
    for name in (DEFAULT_WORKSHEETS if names is None else names):
        schema = get_schema(name)
        override = overrides.get(name)
        connectors.append(
            build_connector(
                schema,
                store,
                insert_chunk=override.insert if override else None,
                update_chunk=override.update if override else None,
                progress_interval=progress_interval,
            )
        )
    return connectors
