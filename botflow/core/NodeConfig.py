"""
Per-kind configuration records.

Every node kind owns one pydantic model.  Field names match the snapshot
wire format so a record can be dumped straight into a block entry and read
back again.  Unknown keys are ignored on input, missing keys take the
defaults below.
"""
from __future__ import annotations

from typing import List

from pydantic import BaseModel, ConfigDict, Field

from .Types import (
    CartAction,
    CatalogSource,
    ConditionOp,
    FormFieldType,
    LoopMode,
    NotifyTarget,
    StoreOperation,
)


class BlockConfig(BaseModel):
    model_config = ConfigDict(
        extra="ignore",
        use_enum_values=True,
        validate_assignment=True,
        validate_default=True,
    )


# ── Rows ──────────────────────────────────────────────────────────────────────

class KeyboardButton(BaseModel):
    model_config = ConfigDict(extra="ignore")

    text: str = ""
    callback_data: str = ""


class FormField(BaseModel):
    model_config = ConfigDict(extra="ignore", use_enum_values=True, validate_default=True)

    type: FormFieldType = FormFieldType.NAME
    variable: str = ""


# ── Records ───────────────────────────────────────────────────────────────────

class StartConfig(BlockConfig):
    message: str = ""


class MessageConfig(BlockConfig):
    text: str = ""


class QuestionConfig(BlockConfig):
    question: str = ""
    variable: str = ""


class ChoiceConfig(BlockConfig):
    question: str = ""
    options: List[str] = Field(default_factory=lambda: [""])
    variable: str = ""


class ConditionConfig(BlockConfig):
    variable: str = ""
    condition: ConditionOp = ConditionOp.EQUALS
    value: str = ""


class DelayConfig(BlockConfig):
    seconds: int = 1


class SetVariableConfig(BlockConfig):
    variable: str = ""
    value: str = ""


class LoopConfig(BlockConfig):
    loop_type: LoopMode = LoopMode.COUNT
    count: int = 3
    counter_variable: str = ""
    while_variable: str = ""
    while_condition: ConditionOp = ConditionOp.EQUALS
    while_value: str = ""
    list_items: str = ""
    list_variable: str = ""


class SendImageConfig(BlockConfig):
    image_file: str = ""
    caption: str = ""


class InlineKeyboardConfig(BlockConfig):
    message: str = ""
    buttons: List[KeyboardButton] = Field(default_factory=lambda: [KeyboardButton()])


class ComputeConfig(BlockConfig):
    formula: str = ""
    result_variable: str = ""


class CartOpConfig(BlockConfig):
    action: CartAction = CartAction.ADD
    product_id: str = "product_id"
    quantity: str = "quantity"


class PaymentConfig(BlockConfig):
    title: str = ""
    description: str = ""
    amount: str = ""
    currency: str = "RUB"
    provider_token: str = ""


class RecordStoreConfig(BlockConfig):
    operation: StoreOperation = StoreOperation.SAVE
    key: str = ""
    data: str = ""
    result_variable: str = ""


class CatalogConfig(BlockConfig):
    source: CatalogSource = CatalogSource.JSON
    products: str = ""


class IntakeFormConfig(BlockConfig):
    fields: List[FormField] = Field(default_factory=lambda: [FormField()])
    success_message: str = ""


class NotifyConfig(BlockConfig):
    target: NotifyTarget = NotifyTarget.ADMIN
    chat_id: str = ""
    admin_chat_id: str = ""
    message: str = ""


class OrderConfirmConfig(BlockConfig):
    title: str = ""
    template: str = ""
    show_confirm: bool = True
    show_edit: bool = True
    show_cancel: bool = False


class LLMPromptConfig(BlockConfig):
    api_key: str = ""
    prompt: str = ""
    model: str = "gpt-3.5-turbo"
    max_tokens: int = 500
    temperature: float = 0.7
    result_variable: str = "gpt_response"
