"""Default rule set for redacting Chinese legal documents.

Rules are evaluated in declaration order and the first accepted span wins, so
the order below doubles as the priority between categories. Each replacement
template carries a ``${index}`` placeholder for the per-category sequence
number. Replacement labels use the 【...】 brackets, which no pattern matches.
"""
from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Pattern, Sequence

from legal_ocr.errors import ValidationError

INDEX_PLACEHOLDER = "${index}"

_CJK = "一-龥"
_AMOUNT = r"\d+(?:,\d{3})*(?:\.\d+)?"
_UPPER_NUMERALS = "壹贰叁肆伍陆柒捌玖零拾佰仟万亿千百十"
_CURRENCIES = "(?:RMB|USD|CNY|HKD|JPY|EUR|GBP)"
_CASE_TAIL = r"(?:[，。、,;．.？])?"
_PARTY_ROLES = (
    "甲方|乙方|丙方|丁方|戊方|己方|原告方|被告方|委托方|受托方|发包方|承包方|采购方|"
    "供应商|卖方|买方|出租方|承租方|转让方|受让方|投资方|被投资方|借款人|贷款人|保证人|"
    "抵押人|出质人|收款人|付款人|债务人|债权人|申请人|被申请人|法定代表人|联系人"
)

TYPE_NAMES: Dict[str, str] = {
    "id_card": "身份证号",
    "organization": "组织机构",
    "date": "日期",
    "price": "金额",
    "person_name": "人名",
    "phone": "联系电话",
    "email": "联系邮箱",
    "credit_code": "代码-统一社会信用代码",
    "bank_account": "账号",
    "org_code": "代码-组织机构代码",
    "patent_code": "代码-专利申请号",
    "file_code": "代码-文件编号",
    "case_number": "案号",
    "project_name": "项目名称",
    "address": "地址",
    "blacklist": "敏感信息",
}


@dataclass(slots=True)
class RedactionRule:
    category: str
    patterns: Sequence[str]
    replacement: str
    use_capture_group: bool = False
    compiled: List[Pattern[str]] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        if not self.category:
            raise ValidationError("Redaction rule requires a category")
        if INDEX_PLACEHOLDER not in self.replacement:
            raise ValidationError(f"Replacement for {self.category!r} must contain {INDEX_PLACEHOLDER}")
        try:
            self.compiled = [re.compile(pattern) for pattern in self.patterns]
        except re.error as exc:
            raise ValidationError(f"Invalid pattern in rule {self.category!r}: {exc}") from exc

    def label(self, index: int) -> str:
        return self.replacement.replace(INDEX_PLACEHOLDER, str(index))


DEFAULT_RULES: List[RedactionRule] = [
    RedactionRule(
        "email",
        [
            r"[A-Za-z0-9_\-\.]+@[A-Za-z0-9_\-]+(?:\.[A-Za-z0-9_\-]+)+",
            r"邮箱\s*[：:]?\s*([A-Za-z0-9_\-\.]+@[A-Za-z0-9_\-]+(?:\.[A-Za-z0-9_\-]+)+)",
        ],
        "【邮箱${index}】",
        use_capture_group=True,
    ),
    RedactionRule(
        "id_card",
        [r"[1-9]\d{5}(18|19|20)\d{2}(0[1-9]|1[0-2])(0[1-9]|[12]\d|3[01])\d{3}[0-9Xx]"],
        "【身份证号${index}】",
    ),
    RedactionRule(
        "organization",
        [
            rf"([{_CJK}]{{2,20}})(有限公司|股份公司|集团)",
            r"([A-Za-z][A-Za-z0-9\s&]{2,30})(?:Company|Co\.|Corporation|Corp\.|Ltd\.|Limited|LLC"
            r"|Inc\.|GmbH|S\.A\.|S\.A|Sp\. z o\.o\.|K\.K\.)\b",
            rf"([{_CJK}]{{2,10}})(?:有限责任公司|股份有限公司)",
        ],
        "【公司${index}】",
    ),
    RedactionRule(
        "date",
        [
            r"\d{4}\s{0,2}年\s{0,2}\d{1,2}\s{0,2}月\s{0,2}\d{1,2}\s{0,2}日",
            r"\d{4}-\d{1,2}-\d{1,2}",
            r"\d{4}/\d{1,2}/\d{1,2}",
            r"\d{1,2}月\d{1,2}日",
        ],
        "【日期${index}】",
    ),
    RedactionRule(
        "price",
        [
            rf"人民币\s*({_AMOUNT})\s*[元万元]",
            rf"￥\s*({_AMOUNT})\s*元",
            rf"{_AMOUNT}[万千万元]",
            rf"(?:人民币|￥)\s*([{_UPPER_NUMERALS}]+元整?)",
            rf"(?:人民币|￥)\s*([{_UPPER_NUMERALS}]+[角分])",
            rf"[{_UPPER_NUMERALS}]+元整?",
            rf"[{_UPPER_NUMERALS}]+[角分]",
            rf"{_CURRENCIES}\s+({_AMOUNT})",
            rf"({_AMOUNT})\s*[～\-－至]\s*({_AMOUNT})",
            rf"{_CURRENCIES}\s+{_AMOUNT}\s*[～\-－至]\s*({_AMOUNT})",
        ],
        "【金额${index}】",
        use_capture_group=True,
    ),
    RedactionRule(
        "person_name",
        [rf"(?:{_PARTY_ROLES})\s*[：:]\s*([{_CJK}]{{2,20}})"],
        "【人员${index}】",
        use_capture_group=True,
    ),
    RedactionRule(
        "phone",
        [
            r"联系电话\s*[：:]\s*(1[3-9]\d{9})",
            r"联系电话\s*[：:]\s*(0\d{2,3}-?\d{7,8})",
            r"联系电话\s*[：:]\s*\((0\d{2,3})\)\d{7,8}",
            r"电话\s*[：:]\s*(1[3-9]\d{9})",
            r"电话\s*[：:]\s*(0\d{2,3}-?\d{7,8})",
            r"手机\s*[：:]\s*(1[3-9]\d{9})",
        ],
        "【电话${index}】",
        use_capture_group=True,
    ),
    RedactionRule(
        "credit_code",
        [
            r"统一社会信用代码\s*[：:]\s*([0-9A-HJ-NPQRTUWXY]{15,18})",
            r"统一社会信用代码\s*[：:]\s*([0-9a-hj-npqrtuwxy]{15,18})",
        ],
        "【代码-统一社会信用代码${index}】",
        use_capture_group=True,
    ),
    RedactionRule(
        "bank_account",
        [
            r"账号\s*[：:]\s*(\d{16,19})",
            r"银行账号\s*[：:]\s*(\d{16,19})",
            r"账户\s*[：:]\s*(\d{16,19})",
            r"\d{4}\s+\d{4}\s+\d{4}\s+\d{4}(?:\s+\d{4})?",
        ],
        "【账号${index}】",
        use_capture_group=True,
    ),
    RedactionRule(
        "org_code",
        [r"组织机构代码\s*[：:]\s*(\d{8}-?[0-9X])"],
        "【代码-组织机构代码${index}】",
        use_capture_group=True,
    ),
    RedactionRule(
        "patent_code",
        [
            r"(?:专利|商标|著作权)申请号\s*[：:]\s*([A-Z0-9\.]+)",
            r"(?:JP|US|EP|CN|WO|KR|GB|DE|FR|CA|AU)(?:\d{4,}|\d{4}/\d{6})[A-Z]\d?",
            r"[A-Z]{2}\d{6,}[A-Z]{0,2}\d?",
        ],
        "【代码-专利申请号${index}】",
        use_capture_group=True,
    ),
    RedactionRule(
        "file_code",
        [
            r"合同编号\s*[：:]\s*([A-Z0-9\-]+)",
            r"文件编号\s*[：:]\s*([A-Z0-9\-]+)",
            r"文件号\s*[：:]\s*([A-Z0-9\-]+)",
        ],
        "【代码-文件编号${index}】",
        use_capture_group=True,
    ),
    RedactionRule(
        "case_number",
        [
            rf"([（(]\d{{4}}[)）][^民刑行知赔]{{1,6}}?(?:民|刑|行|知|赔)[^初终再监执字第]{{0,5}}?\d+[号]){_CASE_TAIL}",
            rf"(\(\d{{4}}\)[^\"]{{2,8}}?\d+号){_CASE_TAIL}",
            rf"(（\d{{4}}）[^\"]{{2,8}}?\d+号){_CASE_TAIL}",
            rf"(\d{{4}}年（[A-Z]{{1,5}}）第\d+号){_CASE_TAIL}",
            rf"(Case No\.(?:\s+[\d:]+-cv-)?\d+){_CASE_TAIL}",
            rf"((?:Civil Action) No\.\s+[\d:]+-cv-\d+){_CASE_TAIL}",
            rf"(\[\d{{4}}\]\s+[A-Z]{{1,4}}\s+\d+\s+\([A-Z]+\)){_CASE_TAIL}",
            rf"(Az\.:\s+\d+[A-Z]?\s+\d+/\d{{2,4}}){_CASE_TAIL}",
            rf"(RG\s+\d+/\d+){_CASE_TAIL}",
        ],
        "【案号${index}】",
        use_capture_group=True,
    ),
    RedactionRule(
        "project_name",
        [
            rf"([{_CJK}]{{2,10}})(项目|工程|系统|平台|计划)",
            rf"([{_CJK}]{{2,10}})(研发|建设|实施)项目",
        ],
        "【项目${index}】",
    ),
    RedactionRule(
        "address",
        [
            rf"(?:地址|住所|住址|注册地址|办公地址|住所地)\s*[：:]\s*([{_CJK}A-Za-z0-9_　]+)",
            rf"([{_CJK}]{{2,4}}市[{_CJK}]{{1,4}}区[{_CJK}\d]+(?:路|街|道|大道)(?:\d+|[{_CJK}]+)楼\d{{1,4}}-\d{{1,4}})",
        ],
        "【地址${index}】",
        use_capture_group=True,
    ),
]


def rule_from_mapping(payload: Mapping[str, Any]) -> RedactionRule:
    try:
        category = str(payload["category"])
        patterns = payload["patterns"]
        replacement = str(payload["replacement"])
    except KeyError as exc:
        raise ValidationError(f"Redaction rule missing field {exc.args[0]!r}") from exc
    if isinstance(patterns, str) or not isinstance(patterns, Sequence) or not patterns:
        raise ValidationError(f"Rule {category!r} needs a non-empty list of patterns")
    use_group = payload.get("use_capture_group", payload.get("useCaptureGroup", False))
    return RedactionRule(category, [str(item) for item in patterns], replacement, bool(use_group))


def load_rules(source: str | Path | Sequence[Mapping[str, Any]]) -> List[RedactionRule]:
    """Build rules from a JSON file path or an already parsed list."""
    if isinstance(source, (str, Path)):
        try:
            data = json.loads(Path(source).read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise ValidationError(f"Could not read redaction rules: {exc}") from exc
    else:
        data = source
    if not isinstance(data, list):
        raise ValidationError("Redaction rules must be a JSON list")
    return [rule_from_mapping(item) for item in data if isinstance(item, Mapping)]


def blacklist_rule(terms: Sequence[str]) -> RedactionRule | None:
    """Literal user-supplied terms, redacted under the ``blacklist`` category."""
    cleaned = sorted({term.strip() for term in terms if term and term.strip()}, key=len, reverse=True)
    if not cleaned:
        return None
    return RedactionRule("blacklist", ["|".join(re.escape(term) for term in cleaned)], "【敏感信息${index}】")


__all__ = [
    "DEFAULT_RULES",
    "INDEX_PLACEHOLDER",
    "RedactionRule",
    "TYPE_NAMES",
    "blacklist_rule",
    "load_rules",
    "rule_from_mapping",
]
