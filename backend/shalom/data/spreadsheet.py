# ------------------------------ IMPORTS ------------------------------
import logging
import os
import time
from typing import List, Dict, Any, Optional

import pandas as pd

from core.config.settings import settings

logger = logging.getLogger(__name__)

# ------------------------------ CONSTANTS ------------------------------

SHEET_NAME = "Envíos"
COLUMNS = [
    "DESTINATARIO (DOC)",
    "TELF. DESTINATARIO",
    "CONTACTO (DOC)",
    "TELF. CONTACTO",
    "NRO GRR",
    "ORIGEN",
    "DESTINO",
    "MERCADERIA",
    "ALTO",
    "ANCHO",
    "LARGO",
    "PESO",
    "CANTIDAD",
]

# ------------------------------ ROW MAPPING ------------------------------

def _first(*values: Any, default: Any = "") -> Any:
    for value in values:
        if value not in (None, ""):
            return value
    return default

def build_row(shipment: Dict[str, Any]) -> Dict[str, Any]:
    """Map one shipment dict onto the portal's upload columns.

    Contact fields fall back to the recipient's, sizes to 0 and quantity to 1.
    """
    recipient = shipment.get("recipient") or {}
    recipient_doc = _first(shipment.get("recipient_doc"), recipient.get("document_number"))
    recipient_phone = _first(shipment.get("recipient_phone"), recipient.get("phone"))

    return {
        "DESTINATARIO (DOC)": recipient_doc,
        "TELF. DESTINATARIO": recipient_phone,
        "CONTACTO (DOC)": _first(shipment.get("contact_doc"), recipient_doc),
        "TELF. CONTACTO": _first(shipment.get("contact_phone"), recipient_phone),
        "NRO GRR": _first(shipment.get("grr")),
        "ORIGEN": _first(shipment.get("origin")),
        "DESTINO": _first(shipment.get("destination")),
        "MERCADERIA": _first(shipment.get("content"), shipment.get("merchandise")),
        "ALTO": _first(shipment.get("height"), default=0),
        "ANCHO": _first(shipment.get("width"), default=0),
        "LARGO": _first(shipment.get("length"), default=0),
        "PESO": _first(shipment.get("weight"), default=0),
        "CANTIDAD": _first(shipment.get("quantity"), default=1),
    }

def build_dataframe(shipments: List[Dict[str, Any]]) -> pd.DataFrame:
    return pd.DataFrame([build_row(shipment) for shipment in shipments], columns=COLUMNS)

# ------------------------------ FILE OUTPUT ------------------------------

def write_massive_spreadsheet(shipments: List[Dict[str, Any]], output_dir: Optional[str] = None) -> str:
    """Write the rows to a new .xlsx file and return its absolute path."""
    if not shipments:
        raise ValueError("At least one shipment row is required")

    output_dir = output_dir or settings.workflow.spreadsheet_dir
    os.makedirs(output_dir, exist_ok=True)

    file_path = os.path.abspath(os.path.join(output_dir, f"envios_masivos_{int(time.time() * 1000)}.xlsx"))
    build_dataframe(shipments).to_excel(file_path, sheet_name=SHEET_NAME, index=False, engine="openpyxl")

    logger.info(f"Wrote massive shipment spreadsheet with {len(shipments)} row(s) to {file_path}")
    return file_path

# ------------------------------ END OF FILE ------------------------------
