import os

import pandas as pd
import pytest

from shalom.data.spreadsheet import COLUMNS, SHEET_NAME, build_row, write_massive_spreadsheet


def test_contact_fields_fall_back_to_recipient():
    row = build_row({
        "origin": "Lima",
        "destination": "Cusco",
        "recipient": {"document_number": "12345678", "phone": "987654321"},
    })

    assert row["DESTINATARIO (DOC)"] == "12345678"
    assert row["CONTACTO (DOC)"] == "12345678"
    assert row["TELF. CONTACTO"] == "987654321"
    assert row["CANTIDAD"] == 1
    assert row["ALTO"] == 0
    assert row["NRO GRR"] == ""


def test_explicit_fields_win():
    row = build_row({
        "origin": "Lima",
        "destination": "Cusco",
        "recipient_doc": "11111111",
        "contact_doc": "22222222",
        "contact_phone": "900000000",
        "grr": "T001-55",
        "merchandise": "Libros",
        "weight": 3.2,
        "quantity": 4,
    })

    assert row["DESTINATARIO (DOC)"] == "11111111"
    assert row["CONTACTO (DOC)"] == "22222222"
    assert row["TELF. CONTACTO"] == "900000000"
    assert row["MERCADERIA"] == "Libros"
    assert row["PESO"] == 3.2
    assert row["CANTIDAD"] == 4
    assert list(row) == COLUMNS


def test_writes_xlsx_with_expected_sheet(tmp_path):
    path = write_massive_spreadsheet(
        [{"origin": "Lima", "destination": "Cusco", "recipient_doc": "12345678"}],
        output_dir=str(tmp_path / "out"),
    )

    assert os.path.isabs(path)
    assert os.path.basename(path).startswith("envios_masivos_")
    assert path.endswith(".xlsx")

    frame = pd.read_excel(path, sheet_name=SHEET_NAME, dtype=str)
    assert list(frame.columns) == COLUMNS
    assert frame.loc[0, "ORIGEN"] == "Lima"
    assert frame.loc[0, "DESTINATARIO (DOC)"] == "12345678"


def test_empty_batch_rejected(tmp_path):
    with pytest.raises(ValueError):
        write_massive_spreadsheet([], output_dir=str(tmp_path))
