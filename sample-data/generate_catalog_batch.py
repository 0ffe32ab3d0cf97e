#!/usr/bin/env python3
"""
Generates a two-file product batch for trying catalog-doctor by hand.

Run from the repo root:
    python sample-data/generate_catalog_batch.py
    catalog-doctor enrich sample-data/loja-centro.csv sample-data/loja-norte.xlsx --builtin bling-54
    catalog-doctor duplicates sample-data/loja-centro.csv sample-data/loja-norte.xlsx

Problems baked in:
  loja-centro.csv (semicolon, UTF-8)
    - Abbreviations in names and descriptions: "c/", "cx", "un", "pcs", "inox"
    - Exact duplicate name inside the file (rows 2 and 5, different casing)
    - Empty "Marca" cells
  loja-norte.xlsx
    - Third loja-centro product repeated with extra whitespace (cross-file duplicate)
    - Near-duplicate names ("Garrafa Termica 500ml" / "Garrafa Termica 750ml")
    - Extra column "Origem" missing from the CSV (padded on merge)
"""

from pathlib import Path

import openpyxl

HERE = Path(__file__).parent
CSV_OUTPUT = HERE / "loja-centro.csv"
XLSX_OUTPUT = HERE / "loja-norte.xlsx"

CSV_HEADERS = ["Código", "Nome", "Descrição", "Marca", "Preço", "Estoque"]
CSV_ROWS = [
    ["CTR-001", "Mouse Gamer RGB", "Mouse c/ fio 7200 dpi", "Acme", "89,90", "12"],
    ["CTR-002", "Kit Chave de Fenda", "Kit c/ 6 pcs inox", "", "39,90", "40"],
    ["CTR-003", "Cabo USB-C 2m", "Cabo reforçado, cx c/ 1 un", "Voltz", "24,90", "150"],
    ["CTR-004", "mouse gamer rgb", "Mouse c/ fio, cx original", "", "92,00", "3"],
    ["CTR-005", "Garrafa Termica 500ml", "Garrafa inox p/ café", "Termo+", "59,90", "8"],
]

XLSX_HEADERS = ["Código", "Nome", "Descrição", "Marca", "Preço", "Estoque", "Origem"]
XLSX_ROWS = [
    ["NRT-101", "  Cabo  USB-C 2m ", "Cabo p/ carregador", "Voltz", 25.5, 90, "Importado"],
    ["NRT-102", "Garrafa Termica 750ml", "Garrafa inox c/ alça", "Termo+", 69.9, 5, ""],
    ["ctr 005", "Garrafa Térmica Inox", "Tampa s/ vazamento", "", 64.0, 2, "Nacional"],
    ["NRT-104", "Fone Bluetooth", "Fone s/ fio c/ microfone", "Acme", 149.0, 20, "Importado"],
]

CSV_OUTPUT.write_text(
    "\n".join(";".join(row) for row in [CSV_HEADERS] + CSV_ROWS) + "\n",
    encoding="utf-8",
)

wb = openpyxl.Workbook()
ws = wb.active
ws.title = "Produtos"
ws.append(XLSX_HEADERS)
for row in XLSX_ROWS:
    ws.append(row)
wb.save(XLSX_OUTPUT)

print(f"Wrote {CSV_OUTPUT.name} ({len(CSV_ROWS)} rows) and {XLSX_OUTPUT.name} ({len(XLSX_ROWS)} rows)")
