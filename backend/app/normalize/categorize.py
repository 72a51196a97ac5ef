from __future__ import annotations

import re
from typing import Literal, Sequence, Tuple

from backend.app.normalize.text import fold

TxnType = Literal["income", "expense"]

DEFAULT_INCOME_CATEGORY = "Ingresos"
DEFAULT_EXPENSE_CATEGORY = "Gastos"

# ORDER MATTERS: first match wins, and several groups share keywords
# ("servicio" is Freelance for income and Servicios for expenses; "netflix"
# hits Suscripciones before Entretenimiento). Matching is substring-based on
# folded text.
INCOME_RULES: Sequence[Tuple[str, re.Pattern]] = (
    ("Salario", re.compile(r"sueldo|salario|nomina")),
    ("Freelance", re.compile(r"freelance|cliente|servicio")),
    ("Ventas", re.compile(r"venta|vendi")),
)

EXPENSE_RULES: Sequence[Tuple[str, re.Pattern]] = (
    (
        "Suscripciones",
        re.compile(r"suscrip|subscription|membresia|membres[ií]a|netflix|spotify|disney|prime video|hbo|max|paramount"),
    ),
    ("Supermercado", re.compile(r"super|mercado|almacen")),
    ("Comida", re.compile(r"comida|almuerzo|cena|desayuno|resto|restaurante")),
    ("Transporte", re.compile(r"nafta|gasolina|transporte|uber|taxi|subte|colectivo")),
    ("Servicios", re.compile(r"luz|agua|gas|internet|telefono|servicio")),
    ("Salud", re.compile(r"salud|farmacia|medico")),
    (
        "Tecnología",
        re.compile(r"tecnolog|tecnologia|apple|google|microsoft|steam|playstation|xbox|amazon web services|aws"),
    ),
    ("Educación", re.compile(r"educacion|curso|colegio")),
    ("Entretenimiento", re.compile(r"ocio|netflix|spotify|cine|entretenimiento")),
    ("Deudas", re.compile(r"tarjeta|deuda|prestamo|préstamo")),
)


def categorize(txn_type: TxnType, description: str) -> str:
    text = fold(description)
    if txn_type == "income":
        rules, default = INCOME_RULES, DEFAULT_INCOME_CATEGORY
    else:
        rules, default = EXPENSE_RULES, DEFAULT_EXPENSE_CATEGORY

    for category, pattern in rules:
        if pattern.search(text):
            return category
    return default
