"""
Column-policy presets and the JSON config preset format.

A preset bundles a column policy map with an abbreviation table. The
built-in ``bling-54`` preset targets product exports from the Bling ERP:
identifiers, prices, stock and dimensions are protected, text fields are
analyzed.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Mapping

from catalog_doctor.contracts import build_contract, utc_now_iso
from catalog_doctor.engine.shared import (
    ACTION_ANALYZE,
    ACTION_IGNORE,
    ColumnPolicy,
    InvalidPresetError,
)
from catalog_doctor.engine.text import normalize_abbreviations

PRESET_FORMAT_VERSION = "1.0"

PROTECTED_HEADER_RE = re.compile(
    r"preço|preco|price|valor|custo|cost|estoque|stock|quantidade|qtde?|peso|weight"
    r"|largura|altura|profundidade|comprimento|gtin|ean|ncm|cest",
    re.IGNORECASE,
)

_PROTECTED = ColumnPolicy(action=ACTION_IGNORE, is_protected=True)
_ANALYZE = ColumnPolicy(action=ACTION_ANALYZE)
_IGNORE = ColumnPolicy(action=ACTION_IGNORE)


def _policies(columns: Iterable[str], policy: ColumnPolicy) -> dict[str, ColumnPolicy]:
    return {column: policy for column in columns}


BLING_COLUMN_CONFIG: dict[str, ColumnPolicy] = {
    # identifiers
    **_policies(
        ["ID", "Código", "Código Produto", "SKU", "Código de Barras", "GTIN", "EAN", "NCM", "CEST"],
        _PROTECTED,
    ),
    # text
    **_policies(
        [
            "Nome", "Nome Produto", "Título", "Descrição", "Descrição Curta", "Descrição Longa",
            "Descrição Completa", "Descrição do Produto", "Descrição complementar",
        ],
        _ANALYZE,
    ),
    # classification and attributes
    **_policies(
        [
            "Categoria", "Categoria do Produto", "Subcategoria", "Marca", "Fabricante",
            "Cor", "Tamanho", "Material", "Modelo", "Tipo", "Características", "Especificações",
        ],
        _ANALYZE,
    ),
    # SEO
    **_policies(
        ["Palavras-chave", "Tags", "Meta Title", "Meta Description", "Grupo de Tags/Tags"],
        _ANALYZE,
    ),
    # prices
    **_policies(
        [
            "Preço", "Preço de Venda", "Preço Venda", "Preço de Custo", "Preço Custo",
            "Preço promocional", "Custo", "Valor",
        ],
        _PROTECTED,
    ),
    # stock
    **_policies(
        ["Estoque", "Estoque Atual", "Estoque mínimo", "Estoque máximo", "Quantidade"],
        _PROTECTED,
    ),
    # dimensions
    **_policies(
        [
            "Peso", "Peso Bruto", "Peso Líquido", "Largura", "Altura", "Profundidade",
            "Comprimento", "Unidade de Medida",
        ],
        _PROTECTED,
    ),
    # images and status
    **_policies(["URL Imagens Externas", "Imagem", "Imagens", "Situação", "Status", "Ativo"], _IGNORE),
    **_policies(["Observações", "Observação", "Obs"], _ANALYZE),
}

BLING_ABBREVIATIONS: dict[str, str] = {
    # measures
    "cm": "centímetro",
    "kg": "quilograma",
    "gr": "grama",
    "ml": "mililitro",
    "lt": "litro",
    "mt": "metro",
    "mm": "milímetro",
    # units
    "un": "unidade",
    "und": "unidade",
    "pc": "peça",
    "pç": "peça",
    "pçs": "peças",
    "pcs": "peças",
    "cx": "caixa",
    "pct": "pacote",
    "kit": "kit",
    "jg": "jogo",
    "par": "par",
    "dz": "dúzia",
    # sizes
    "tam": "tamanho",
    "tam-p": "tamanho pequeno",
    "tam-m": "tamanho médio",
    "tam-g": "tamanho grande",
    "tam-gg": "tamanho extra grande",
    "tam-xg": "tamanho extra grande",
    "tam-pp": "tamanho extra pequeno",
    "med": "médio",
    "peq": "pequeno",
    "grd": "grande",
    # prepositions
    "c/": "com",
    "s/": "sem",
    "p/": "para",
    # other
    "qnt": "quantidade",
    "qtd": "quantidade",
    "ref": "referência",
    "mod": "modelo",
    "cor": "cor",
    "fab": "fabricante",
    "orig": "original",
    "imp": "importado",
    "nac": "nacional",
    "aut": "autêntico",
    "gen": "genérico",
    "univ": "universal",
    "compat": "compatível",
    "inox": "aço inoxidável",
    "alum": "alumínio",
    "mad": "madeira",
    "plast": "plástico",
    "borr": "borracha",
    "tec": "tecido",
    "sint": "sintético",
    "nat": "natural",
}


@dataclass
class ConfigPreset:
    name: str
    abbreviations: dict[str, str]
    column_config: dict[str, ColumnPolicy]
    version: str = PRESET_FORMAT_VERSION
    exported_at: str | None = None
    description: str = ""
    preset_id: str | None = None
    is_builtin: bool = False
    warnings: list[str] = field(default_factory=list)


BUILTIN_PRESETS: dict[str, ConfigPreset] = {
    "bling-54": ConfigPreset(
        preset_id="bling-54",
        name="ERP BLING (54 colunas)",
        description=(
            "Configuração otimizada para planilhas exportadas do Bling "
            "com proteção de campos financeiros."
        ),
        abbreviations=BLING_ABBREVIATIONS,
        column_config=BLING_COLUMN_CONFIG,
        is_builtin=True,
    ),
}


def get_builtin_preset(preset_id: str) -> ConfigPreset:
    try:
        return BUILTIN_PRESETS[preset_id]
    except KeyError:
        raise InvalidPresetError(
            f"Unknown built-in preset '{preset_id}'. Available: {', '.join(sorted(BUILTIN_PRESETS))}"
        ) from None


def apply_preset_to_columns(columns: Iterable[str], preset: ConfigPreset) -> dict[str, ColumnPolicy]:
    """
    Resolve a policy for every detected column.

    Lookup order: exact header, case-insensitive header, partial match in
    either direction, then a protected-header pattern (prices, stock,
    dimensions, tax codes). Anything else is analyzed.
    """
    config = preset.column_config
    lowered = [(key, key.lower().strip()) for key in config]
    result: dict[str, ColumnPolicy] = {}
    for column in columns:
        if column in config:
            result[column] = config[column]
            continue
        lower_col = column.lower().strip()
        match = next((key for key, lower_key in lowered if lower_key == lower_col), None)
        if match is None and lower_col:
            match = next(
                (key for key, lower_key in lowered if lower_key in lower_col or lower_col in lower_key),
                None,
            )
        if match is not None:
            result[column] = config[match]
            continue
        result[column] = _PROTECTED if PROTECTED_HEADER_RE.search(column) else _ANALYZE
    return result


def preset_from_dict(payload: Any) -> ConfigPreset:
    if not isinstance(payload, Mapping):
        raise InvalidPresetError("Preset root must be a JSON object.")
    abbreviations = payload.get("abbreviations")
    if not isinstance(abbreviations, Mapping):
        raise InvalidPresetError("Invalid preset: abbreviations not found.")

    warnings: list[str] = []
    column_payload = payload.get("columnConfig")
    if not isinstance(column_payload, Mapping):
        column_payload = {}
        warnings.append("Preset has no columnConfig; every column falls back to preset matching.")

    column_config: dict[str, ColumnPolicy] = {}
    for column, raw_policy in column_payload.items():
        if not isinstance(raw_policy, Mapping):
            raise InvalidPresetError(f"Invalid preset: policy for column '{column}' must be an object.")
        try:
            column_config[str(column)] = ColumnPolicy.from_dict(raw_policy)
        except InvalidPresetError as exc:
            raise InvalidPresetError(f"Invalid preset: policy for column '{column}': {exc}") from exc

    return ConfigPreset(
        name=str(payload.get("name") or "Importado"),
        abbreviations=normalize_abbreviations(abbreviations),
        column_config=column_config,
        version=str(payload.get("version") or PRESET_FORMAT_VERSION),
        exported_at=payload.get("exportedAt"),
        warnings=warnings,
    )


def preset_to_dict(preset: ConfigPreset) -> dict[str, Any]:
    return {
        "contract": build_contract("catalog_doctor.config_preset"),
        "name": preset.name,
        "version": preset.version,
        "exportedAt": utc_now_iso(),
        "abbreviations": dict(preset.abbreviations),
        "columnConfig": {column: policy.to_dict() for column, policy in preset.column_config.items()},
    }


def load_preset(path: Path) -> ConfigPreset:
    if not path.exists():
        raise InvalidPresetError(f"Preset not found: {path}")
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise InvalidPresetError(f"Invalid JSON in preset {path}: {exc}") from exc
    return preset_from_dict(payload)
