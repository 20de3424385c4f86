"""Label models."""

from __future__ import annotations

from pydantic import BaseModel, Field

LABEL_COLORS = [
    "#ff9485",
    "#64c4ff",
    "#ffd429",
    "#dfaef0",
    "#99b6c1",
    "#55ccb3",
    "#ff9dff",
    "#d3a91d",
    "#6d7cce",
    "#d7e752",
    "#00d0e2",
    "#ffc5c7",
    "#93ceac",
    "#f74848",
    "#00a0f2",
    "#83e422",
    "#ffaf04",
    "#b5ebff",
    "#9ba6ff",
    "#9368cf",
]


def label_color_hex(color: int) -> str:
    if 0 <= color < len(LABEL_COLORS):
        return LABEL_COLORS[color]
    return "#000000"


class LabelBody(BaseModel):
    name: str
    color: int = Field(default=0, ge=0)


class LabelID(BaseModel):
    id: str


class Label(BaseModel):
    id: str
    name: str
    color: int = 0
    color_hex: str = "#000000"

    @classmethod
    def build(cls, id: str, name: str, color: int) -> Label:
        return cls(id=id, name=name, color=color, color_hex=label_color_hex(color))


class LabelChatAssociation(BaseModel):
    label_id: str
    chat_id: str
    label: Label | None = None
