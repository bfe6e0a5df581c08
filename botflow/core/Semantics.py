"""
Runtime semantics shared by the preview simulator and compiled bots.

The compiler inlines the source of INLINE_FUNCTIONS (and the values of
INLINE_CONSTANTS) into every generated program, so these helpers must only
use the standard library modules the generated header imports:
ast, csv, io, json, operator, re.
"""
from __future__ import annotations

import ast
import csv
import io
import json
import operator
import re


CATALOG_PAGE_SIZE = 8
LOOP_WHILE_LIMIT = 100

CART_EMPTY_MESSAGE = "🛒 Your cart is empty"
CATALOG_EMPTY_MESSAGE = "The catalog is empty."
FORM_SUCCESS_MESSAGE = "Thank you! Your details have been received."
RESTART_HINT = "Send /start to begin."

CATALOG_PREV = "catalog_prev"
CATALOG_NEXT = "catalog_next"
CATALOG_PRODUCT_PREFIX = "catalog_product_"

FORM_FIELD_LABELS = {
    "name":    "your name",
    "phone":   "your phone number",
    "email":   "your email",
    "address": "the delivery address",
    "comment": "a comment",
}

ORDER_CONFIRM_LABELS = {
    "confirm": "✅ Confirm",
    "edit":    "✏️ Edit",
    "cancel":  "❌ Cancel",
}


def substitute_variables(text, variables):
    """Replace every {name} bound in `variables` with str(value); leave the rest verbatim."""
    if not text:
        return ""

    def _replace(match):
        name = match.group(1)
        if name in variables:
            return str(variables[name])
        return match.group(0)

    return re.sub(r"\{([^{}]+)\}", _replace, str(text))


def check_condition(actual, condition, expected):
    """String comparison for condition nodes and while-loops."""
    actual = "" if actual is None else str(actual)
    expected = "" if expected is None else str(expected)
    if condition == "equals":
        return actual == expected
    if condition == "not_equals":
        return actual != expected
    if condition == "contains":
        return expected in actual
    if condition == "not_empty":
        return actual.strip() != ""
    return False


def safe_int(value, default=0):
    try:
        return int(float(value))
    except (TypeError, ValueError, OverflowError):
        return default


def safe_float(value, default=0.0):
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def safe_calculate(formula, variables):
    """
    Evaluate a restricted arithmetic formula after variable substitution.

    Only digits, '.', '(', ')' and + - * / % survive; anything else, a parse
    error or an arithmetic error yields 0.  Integral results come back as int.
    """
    expression = "".join(substitute_variables(formula, variables).split())
    if not expression or any(ch not in "0123456789+-*/%()." for ch in expression):
        return 0

    binary = {
        ast.Add: operator.add,
        ast.Sub: operator.sub,
        ast.Mult: operator.mul,
        ast.Div: operator.truediv,
        ast.Mod: operator.mod,
    }
    unary = {ast.UAdd: operator.pos, ast.USub: operator.neg}

    def _eval(node):
        if isinstance(node, ast.Expression):
            return _eval(node.body)
        if isinstance(node, ast.Constant) and type(node.value) in (int, float):
            return node.value
        if isinstance(node, ast.BinOp) and type(node.op) in binary:
            return binary[type(node.op)](_eval(node.left), _eval(node.right))
        if isinstance(node, ast.UnaryOp) and type(node.op) in unary:
            return unary[type(node.op)](_eval(node.operand))
        raise ValueError(f"unsupported expression: {ast.dump(node)}")

    try:
        result = _eval(ast.parse(expression, mode="eval"))
    except (SyntaxError, ValueError, ArithmeticError, RecursionError):
        return 0
    if isinstance(result, float) and result.is_integer():
        return int(result)
    return result


def parse_catalog(source, text):
    """Products from JSON (a list, or {"products": [...]}) or CSV with a header row.  Malformed input gives []."""
    text = (text or "").strip()
    if not text:
        return []

    products = []
    if source == "csv":
        rows = list(csv.reader(io.StringIO(text)))
        for row in rows[1:]:
            if not row or not row[0].strip():
                continue
            products.append({
                "name": row[0].strip(),
                "price": row[1].strip() if len(row) > 1 else "0",
                "description": row[2].strip() if len(row) > 2 else "",
            })
        return products

    try:
        data = json.loads(text)
    except ValueError:
        return []
    if isinstance(data, dict):
        data = data.get("products", [])
    if not isinstance(data, list):
        return []
    for item in data:
        if isinstance(item, dict) and item.get("name"):
            products.append({
                "name": str(item["name"]),
                "price": item.get("price", 0),
                "description": str(item.get("description", "")),
            })
    return products


def catalog_page(products, page):
    """Clamp `page` and return (page, total_pages, [(global_index, product), ...])."""
    total_pages = max(1, -(-len(products) // CATALOG_PAGE_SIZE))
    page = min(max(0, safe_int(page)), total_pages - 1)
    start = page * CATALOG_PAGE_SIZE
    return page, total_pages, list(enumerate(products[start:start + CATALOG_PAGE_SIZE], start))


def select_product(products, tag, variables):
    """Bind the product named by a catalog_product_N tag.  Returns False for a stale tag."""
    index = safe_int(tag[len(CATALOG_PRODUCT_PREFIX):], -1)
    if not 0 <= index < len(products):
        return False
    product = products[index]
    variables["product_name"] = product["name"]
    variables["product_price"] = safe_float(product["price"])
    variables["product_description"] = product["description"]
    variables["selected_product_number"] = index + 1
    return True


def update_cart(cart, action, product_id, quantity):
    """Apply add/remove/clear to `cart` in place; show and count are read-only."""
    if action == "add" and product_id not in (None, ""):
        key = str(product_id)
        cart[key] = cart.get(key, 0) + max(1, safe_int(quantity, 1))
    elif action == "remove" and product_id not in (None, ""):
        cart.pop(str(product_id), None)
    elif action == "clear":
        cart.clear()


def cart_summary(cart):
    if not cart:
        return CART_EMPTY_MESSAGE
    lines = ["🛒 Your cart:"]
    for product_id, quantity in cart.items():
        lines.append(f"• {product_id} × {quantity}")
    return "\n".join(lines)


def form_field_prompt(field_type):
    return f"Please enter {FORM_FIELD_LABELS.get(field_type, field_type)}:"


def payment_minor_units(amount):
    """Amount in minor currency units (x100), or 0 when it is not a positive number."""
    value = safe_float(amount) * 100
    if not value > 0 or value == float("inf"):
        return 0
    return int(round(value))


def start_loop_frame(node_id, config, variables):
    items = []
    if config.get("loop_type") == "list":
        raw = substitute_variables(config.get("list_items", ""), variables)
        items = [item.strip() for item in raw.split(",") if item.strip()]
    return {"node": node_id, "iteration": 0, "items": items}


def advance_loop(config, frame, variables):
    """
    Decide the next iteration of a loop frame.  Returns True when the body
    should run again (the counter and list variables are already bound),
    False when the loop is finished.
    """
    mode = config.get("loop_type", "count")
    iteration = frame["iteration"]

    if mode == "while":
        more = iteration < LOOP_WHILE_LIMIT and check_condition(
            variables.get(config.get("while_variable", ""), ""),
            config.get("while_condition", "equals"),
            substitute_variables(config.get("while_value", ""), variables),
        )
    elif mode == "list":
        more = iteration < len(frame["items"])
        if more and config.get("list_variable"):
            variables[config["list_variable"]] = frame["items"][iteration]
    else:
        more = iteration < safe_int(config.get("count", 0))

    if not more:
        return False
    frame["iteration"] = iteration + 1
    if config.get("counter_variable"):
        variables[config["counter_variable"]] = iteration + 1
    return True


INLINE_CONSTANTS = (
    "CATALOG_PAGE_SIZE",
    "LOOP_WHILE_LIMIT",
    "CART_EMPTY_MESSAGE",
    "CATALOG_EMPTY_MESSAGE",
    "FORM_SUCCESS_MESSAGE",
    "RESTART_HINT",
    "CATALOG_PREV",
    "CATALOG_NEXT",
    "CATALOG_PRODUCT_PREFIX",
    "FORM_FIELD_LABELS",
    "ORDER_CONFIRM_LABELS",
)

INLINE_FUNCTIONS = (
    substitute_variables,
    check_condition,
    safe_int,
    safe_float,
    safe_calculate,
    parse_catalog,
    catalog_page,
    select_product,
    update_cart,
    cart_summary,
    form_field_prompt,
    payment_minor_units,
    start_loop_frame,
    advance_loop,
)
