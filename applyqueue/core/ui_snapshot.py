"""
UI 快照：收集当前页面可交互元素，按 ref 编号后交给 LLM 选择。
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Tuple

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import Page


@dataclass
class SnapshotItem:
    ref: str
    role: str
    name: str
    nth: int
    input_type: str | None = None
    required: bool = False
    in_form: bool = False
    value_hint: str = ""
    options: tuple[str, ...] = ()

    def describe(self) -> str:
        parts = [f"{self.ref} | role={self.role}"]
        if self.input_type:
            parts.append(f"type={self.input_type}")
        if self.required:
            parts.append("required")
        if self.value_hint:
            parts.append(f"value={self.value_hint}")
        line = ", ".join(parts) + f" | name={self.name}"
        if self.options:
            line += f" | options={' / '.join(self.options)}"
        return line


ROLE_ORDER = [
    "button",
    "link",
    "checkbox",
    "radio",
    "combobox",
    "textbox",
]

_DESCRIBE_JS = """
(el) => {
  const label = el.labels && el.labels.length ? el.labels[0].innerText : "";
  const tag = (el.tagName || "").toLowerCase();
  const rawVal = el.value || "";
  const options = tag === "select"
    ? Array.from(el.options || []).slice(0, 12).map((o) => (o.text || "").trim())
    : [];
  return {
    label,
    aria: el.getAttribute("aria-label") || "",
    placeholder: el.getAttribute("placeholder") || "",
    text: (el.innerText || "").trim().slice(0, 80),
    name: el.getAttribute("name") || "",
    type: el.getAttribute("type") || "",
    required: !!(el.required || el.getAttribute("aria-required") === "true"),
    inForm: !!el.closest("form"),
    valueHint: rawVal.length > 20 ? rawVal.substring(0, 20) : rawVal,
    options,
  };
}
"""


def _describe(el) -> dict:
    try:
        return el.evaluate(_DESCRIBE_JS) or {}
    except PlaywrightError:
        return {}


def _display_name(meta: dict, *keys: str) -> str:
    for key in keys:
        value = (meta.get(key) or "").strip()
        if value:
            return value
    return ""


def _role_rank(role: str) -> int:
    return ROLE_ORDER.index(role) if role in ROLE_ORDER else len(ROLE_ORDER)


def build_ui_snapshot(
    page: Page,
    max_per_role: int = 30,
    max_total: int = 120,
) -> Tuple[str, Dict[str, SnapshotItem]]:
    """生成可交互元素快照（文本 + ref 映射）。"""
    items: List[SnapshotItem] = []
    name_counters: Dict[tuple[str, str], int] = {}

    def _add(role: str, name: str, meta: dict, input_type: str | None, nth: int | None = None) -> None:
        key = (role, name)
        counted = name_counters.get(key, 0)
        name_counters[key] = counted + 1
        if nth is None:
            nth = counted
        items.append(
            SnapshotItem(
                ref="",
                role=role,
                name=name,
                nth=nth,
                input_type=input_type,
                required=bool(meta.get("required")),
                in_form=bool(meta.get("inForm")),
                value_hint=str(meta.get("valueHint") or ""),
                options=tuple(o for o in meta.get("options") or () if o),
            )
        )

    for role in ROLE_ORDER:
        locator = page.get_by_role(role)
        try:
            count = locator.count()
        except PlaywrightError:
            continue
        for i in range(min(count, max_per_role)):
            if len(items) >= max_total:
                break
            el = locator.nth(i)
            try:
                if not el.is_visible(timeout=100):
                    continue
            except PlaywrightError:
                continue
            meta = _describe(el)
            name = _display_name(meta, "label", "aria", "text", "placeholder", "name")
            if not name:
                continue
            _add(role, name, meta, meta.get("type") or None)

    # 上传控件常是隐藏的 input[type=file]，单独收集
    file_locator = page.locator("input[type='file']")
    try:
        file_count = file_locator.count()
    except PlaywrightError:
        file_count = 0
    for i in range(min(file_count, max_per_role)):
        if len(items) >= max_total:
            break
        meta = _describe(file_locator.nth(i))
        name = _display_name(meta, "label", "aria", "name") or f"file upload input {i + 1}"
        # file input 按 DOM 顺序定位
        _add("file_input", name, meta, "file", nth=i)

    in_form_items = [item for item in items if item.in_form]
    if in_form_items:
        # 表单外的提交按钮（如 LinkedIn 弹窗底部的 Next）也要保留
        items = in_form_items + [
            item for item in items if not item.in_form and item.role == "button"
        ]

    # 必填优先
    items = sorted(items, key=lambda x: (not x.required, _role_rank(x.role)))

    ref_map: Dict[str, SnapshotItem] = {}
    for idx, item in enumerate(items):
        item.ref = f"e{idx + 1}"
        ref_map[item.ref] = item

    lines = [item.describe() for item in items]
    return ("\n".join(lines) if lines else "（无可交互元素）"), ref_map
