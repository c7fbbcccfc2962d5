"""
Field extraction - two independent strategies feeding one LeadData.

1. HeuristicExtractor: regex/keyword rules run on every user utterance.
   A field that is already collected is never re-extracted (idempotent per field).
2. parse_structured_data(): reads the hidden block the model appends to its reply:
       <!--STRUCTURED_DATA: {"name": ..., "projectType": ..., "score": ...} -->
   The block is always stripped from user-visible text.

Precedence: merge_updates() lets model values override heuristic values for the same field.
"""
import json
import logging
import re
from typing import Optional

from leadcapture.schemas.lead import LEAD_FIELDS, FieldCollectionStatus, LeadData, StructuredData

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")

# Applied after digit groups are joined ("0431 481 227" -> "0431481227")
PHONE_PATTERN = re.compile(
    r"(?<!\d)(?:(?:\+?61|0)4\d{8}|\+\d{1,3}\d{6,14}|\d{10})(?!\d)"
)
_DIGIT_SEPARATORS = re.compile(r"(?<=\d)[\s\-().]+(?=\d)")

BUDGET_PATTERN = re.compile(
    r"\$?\d+(?:\.\d+)?\s*[kK]?\s*(?:-|to)\s*\$?\d+(?:\.\d+)?\s*[kK]\b\+?"  # 50k-100k, 50 to 100k
    r"|\$?\d+(?:\.\d+)?\s*[kK]\b\+?"                                       # $75k, 25k
    r"|\$\d+(?:\.\d+)?\s*(?:[mM]|million)\b\+?"                            # $1m, $1.5 million
    r"|\$\s?\d{1,3}(?:,\d{3})+\+?"                                         # $75,000
    r"|\$\s?\d{4,}\+?"                                                     # $5000
    r"|\b\d{1,3}(?:,\d{3})+\b\+?"                                          # 50,000
)

# Ordered: first match wins
TIMELINE_KEYWORDS = [
    (re.compile(r"\basap\b", re.IGNORECASE), "ASAP"),
    (re.compile(r"\bimmediately\b", re.IGNORECASE), "ASAP"),
    (re.compile(r"\burgent(?:ly)?\b", re.IGNORECASE), "ASAP"),
    (re.compile(r"\bright away\b", re.IGNORECASE), "ASAP"),
    (re.compile(r"\bnext week\b", re.IGNORECASE), "Within 1 month"),
    (re.compile(r"\bthis month\b", re.IGNORECASE), "Within 1 month"),
    (re.compile(r"\bwithin (?:a|1|one) month\b", re.IGNORECASE), "Within 1 month"),
    (re.compile(r"\b(?:a )?(?:few|couple (?:of )?)weeks\b", re.IGNORECASE), "Within 1 month"),
    (re.compile(r"\bnext month\b", re.IGNORECASE), "1-3 months"),
    (re.compile(r"\b(?:a )?(?:few|couple (?:of )?)months\b", re.IGNORECASE), "1-3 months"),
    (re.compile(r"\bnext quarter\b", re.IGNORECASE), "3-6 months"),
    (re.compile(r"\bquarter\b", re.IGNORECASE), "3-6 months"),
    (re.compile(r"\bthis year\b", re.IGNORECASE), "3-6 months"),
    (re.compile(r"\bexploring\b", re.IGNORECASE), "Just researching"),
    (re.compile(r"\bresearching\b", re.IGNORECASE), "Just researching"),
    (re.compile(r"\bjust looking\b", re.IGNORECASE), "Just researching"),
]

PROJECT_KEYWORDS = [
    (re.compile(r"\bproduct manage(?:r|ment)\b", re.IGNORECASE), "Product Management"),
    (re.compile(r"\bchat\s?bots?\b", re.IGNORECASE), "AI Chatbot"),
    (re.compile(r"\bautomat(?:e|ed|ion|ing)\b", re.IGNORECASE), "Workflow Automation"),
    (re.compile(r"\bprototyp(?:e|es|ing)\b", re.IGNORECASE), "Rapid Prototyping"),
    (re.compile(r"\bmvp\b", re.IGNORECASE), "Rapid Prototyping"),
    (re.compile(r"\b(?:fractional )?cto\b", re.IGNORECASE), "Fractional CTO"),
    (re.compile(r"\btechnical lead(?:ership)?\b", re.IGNORECASE), "Fractional CTO"),
    (re.compile(r"\bmachine learning\b", re.IGNORECASE), "AI Integration"),
    (re.compile(r"\bai\b", re.IGNORECASE), "AI Integration"),
    (re.compile(r"\bintegrat(?:e|ion|ions|ing)\b", re.IGNORECASE), "AI Integration"),
    (re.compile(r"\bspec(?:s|ification|ifications)\b", re.IGNORECASE), "Requirements & Specifications"),
    (re.compile(r"\brequirements\b", re.IGNORECASE), "Requirements & Specifications"),
]

_NAME_WORD = r"[A-Z][a-zA-Z'\-]+"
_ANY_WORD = r"[A-Za-z][a-zA-Z'\-]+"

# Prefix matching is case-insensitive; the captured name must be capitalised
# except after the unambiguous "my name is" / "call me".
NAME_PATTERNS = [
    re.compile(rf"(?i:\bmy name is|\bname's)\s+({_ANY_WORD}(?:\s+{_NAME_WORD})?)"),
    re.compile(rf"(?i:\bcall me)\s+({_ANY_WORD})"),
    re.compile(rf"(?i:\bthis is)\s+({_NAME_WORD}(?:\s+{_NAME_WORD})?)"),
    re.compile(rf"(?i:\bit'?s)\s+({_NAME_WORD})\s+(?i:from)\b"),
    re.compile(rf"^\s*(?i:hi,?\s+|hello,?\s+|hey,?\s+)?({_NAME_WORD}(?:\s+{_NAME_WORD})?)\s+(?i:here)\b"),
    re.compile(rf"(?i:\bi am|\bi'm|\bim)\s+({_NAME_WORD}(?:\s+{_NAME_WORD})?)\b"),
]

# Words that follow "I am" / "this is" without being names
DEFAULT_NAME_DENYLIST = [
    "not", "sure", "unsure", "uncertain", "maybe", "possibly", "probably", "definitely",
    "interested", "looking", "just", "here", "from", "the", "a", "an", "working", "based",
    "hoping", "trying", "keen", "ready", "thinking", "wondering", "after", "also", "still",
    "currently", "good", "great", "fine", "ok", "okay", "yes", "no", "urgent", "asap",
    "hi", "hello", "hey", "anyone", "someone", "everyone",
]

_COMPANY_WORD = r"[A-Z0-9][\w&'.\-]*"
_COMPANY_RUN = rf"{_COMPANY_WORD}(?:\s+(?:&\s+)?[A-Z][\w&'.\-]*)*"

COMPANY_PATTERNS = [
    re.compile(rf"(?i:\bwork(?:ing)?\s+(?:at|for|with))\s+({_COMPANY_RUN})"),
    re.compile(rf"(?i:\brepresent(?:ing)?)\s+({_COMPANY_RUN})"),
    re.compile(rf"(?i:\b(?:co-?founder|founder|ceo|cto|owner|director|head)\s+(?:of|at))\s+({_COMPANY_RUN})"),
    re.compile(rf"(?i:\bcompany(?:\s+name)?\s+is|\bcompany\s+called)\s+({_COMPANY_RUN})"),
    re.compile(rf"(?i:\bfrom)\s+({_COMPANY_RUN})"),
]

COMPANY_SUFFIX_PATTERN = re.compile(
    rf"\b((?:{_COMPANY_WORD}\s+)+(?i:services|industries|solutions|technologies|consulting"
    rf"|systems|group|labs|partners|studios?|agency|ventures|digital))\b"
)

_EMAIL_PREFIX_RUN = re.compile(rf"({_COMPANY_RUN})$")
_EMAIL_PREFIX_SEPARATORS = re.compile(r"(?:[\s,;:.\-|]|(?i:\bemail\b)|(?i:\bat\b))+$")

# Capitalised words that open a sentence rather than name an organisation
_NOT_COMPANY = {
    "i", "i'm", "im", "my", "me", "hi", "hello", "hey", "email", "contact", "reach",
    "thanks", "thank", "yes", "no", "sure", "please", "it's", "its", "this", "we", "our",
    "the", "you", "can", "and",
}

STRUCTURED_DATA_PATTERN = re.compile(r"<!--\s*STRUCTURED_DATA:([\s\S]*?)-->")

# Explicit corrections: "change my email to x", "budget should be 50k", "name: Bob"
_UPDATE_FIELD_WORDS = {
    "name": "name",
    "company": "company",
    "business": "company",
    "organisation": "company",
    "organization": "company",
    "email": "email",
    "e-mail": "email",
    "phone": "phone",
    "number": "phone",
    "mobile": "phone",
    "project": "project_type",
    "project type": "project_type",
    "timeline": "timeline",
    "timeframe": "timeline",
    "budget": "budget",
}
EXPLICIT_UPDATE_PATTERN = re.compile(
    r"\b(project type|e-mail|email|name|company|business|organi[sz]ation|phone|number|mobile"
    r"|project|timeline|timeframe|budget)\b"
    r"(?:\s+(?:number|address))?\s*(?:is|to|should be|should read|=|:)\s*(.+)",
    re.IGNORECASE,
)
_UPDATE_SEGMENT_SPLIT = re.compile(r"\s*(?:;|,\s*(?=\w+\s+(?:is|to|should)\b)|\band\b(?=\s+(?:the\s+|my\s+)?\w+\s+(?:is|to|should)\b))\s*", re.IGNORECASE)

# Replies that confirm a field rather than replace it ("the timeline is fine")
_NON_VALUES = {"fine", "good", "correct", "right", "ok", "okay", "perfect", "the same", "unchanged"}


def _title_case(value: str) -> str:
    return " ".join(word[:1].upper() + word[1:] for word in value.split())


def _clean_value(value: str) -> str:
    value = value.strip().strip("\"'`")
    return re.sub(r"[\s.!?,;:]+$", "", value)


def find_email(text: str) -> Optional[str]:
    match = EMAIL_PATTERN.search(text)
    return match.group(0).rstrip(".") if match else None


def find_phone(text: str) -> Optional[str]:
    # Emails can hold digit runs; never read a phone out of one
    compact = _DIGIT_SEPARATORS.sub("", EMAIL_PATTERN.sub(" ", text))
    match = PHONE_PATTERN.search(compact)
    return match.group(0) if match else None


def find_budget(text: str) -> Optional[str]:
    match = BUDGET_PATTERN.search(text)
    return match.group(0).strip() if match else None


def find_timeline(text: str) -> Optional[str]:
    for pattern, bucket in TIMELINE_KEYWORDS:
        if pattern.search(text):
            return bucket
    return None


def find_project_type(text: str) -> Optional[str]:
    # Strip emails so "adrian@ai.com" is not read as an AI project
    text = EMAIL_PATTERN.sub(" ", text)
    for pattern, label in PROJECT_KEYWORDS:
        if pattern.search(text):
            return label
    return None


class HeuristicExtractor:
    """Rule-based extraction from a single user utterance."""

    def __init__(self, name_denylist: Optional[list[str]] = None):
        words = list(DEFAULT_NAME_DENYLIST) + list(name_denylist or [])
        self.name_denylist = {w.lower() for w in words}

    def extract(self, utterance: str, lead: LeadData, status: FieldCollectionStatus) -> dict[str, str]:
        """
        Return a partial lead update for fields not yet collected.
        Several fields may come out of one utterance.
        """
        if not utterance or not utterance.strip():
            return {}

        found = self._extract_all(utterance, known_name=lead.name)
        return {
            field: value for field, value in found.items()
            if not getattr(status, field)
        }

    def extract_update(self, utterance: str, lead: Optional[LeadData] = None) -> dict[str, str]:
        """
        Resolve an explicit correction, ignoring collected status.
        Named-field corrections ("timeline is next month") win over implicit matches.
        """
        if not utterance or not utterance.strip():
            return {}

        updates = self._extract_all(utterance, known_name=lead.name if lead else "")
        updates.update(self._explicit_updates(utterance))
        return updates

    def _extract_all(self, utterance: str, known_name: str = "") -> dict[str, str]:
        found: dict[str, str] = {}

        email = find_email(utterance)
        if email:
            found["email"] = email

        phone = find_phone(utterance)
        if phone:
            found["phone"] = phone

        name = self.find_name(utterance)
        if name:
            found["name"] = name

        company = self.find_company(utterance, name or known_name)
        if company:
            found["company"] = company

        timeline = find_timeline(utterance)
        if timeline:
            found["timeline"] = timeline

        budget = find_budget(utterance)
        if budget:
            found["budget"] = budget

        project_type = find_project_type(utterance)
        if project_type:
            found["project_type"] = project_type

        return found

    def find_name(self, utterance: str) -> Optional[str]:
        for pattern in NAME_PATTERNS:
            match = pattern.search(utterance)
            if not match:
                continue
            words = match.group(1).split()
            # "I am Adrian Not sure" -> keep only the leading name words
            kept = []
            for word in words:
                if word.lower() in self.name_denylist:
                    break
                kept.append(word)
            if kept:
                return _title_case(" ".join(kept))
        return None

    def find_company(self, utterance: str, person_name: str = "") -> Optional[str]:
        # Remove emails so "from adrian@oncore.com" never yields a company of "adrian"
        text = EMAIL_PATTERN.sub(lambda m: " " * len(m.group(0)), utterance)

        for pattern in COMPANY_PATTERNS:
            match = pattern.search(text)
            if match:
                company = self._accept_company(match.group(1), person_name)
                if company:
                    return company

        email_match = EMAIL_PATTERN.search(utterance)
        if email_match:
            prefix = _EMAIL_PREFIX_SEPARATORS.sub("", utterance[:email_match.start()])
            run = _EMAIL_PREFIX_RUN.search(prefix)
            if run:
                company = self._accept_company(run.group(1), person_name)
                if company:
                    return company

        suffix = COMPANY_SUFFIX_PATTERN.search(text)
        if suffix:
            return self._accept_company(suffix.group(1), person_name)
        return None

    def _accept_company(self, candidate: str, person_name: str) -> Optional[str]:
        words = _clean_value(candidate).split()
        while words and words[0].lower() in _NOT_COMPANY:
            words.pop(0)
        if not words:
            return None
        company = " ".join(words)
        if person_name and company.lower() == person_name.lower():
            return None
        if len(company) < 2:
            return None
        return company

    def _explicit_updates(self, utterance: str) -> dict[str, str]:
        updates: dict[str, str] = {}
        for segment in _UPDATE_SEGMENT_SPLIT.split(utterance):
            match = EXPLICIT_UPDATE_PATTERN.search(segment)
            if not match:
                continue
            field = _UPDATE_FIELD_WORDS[match.group(1).lower().replace("organization", "organisation")]
            raw = match.group(2)
            value = self._normalize_update(field, raw)
            if value:
                updates[field] = value
        return updates

    def _normalize_update(self, field: str, raw: str) -> Optional[str]:
        if field == "email":
            return find_email(raw)
        if field == "phone":
            return find_phone(raw)

        value = _clean_value(raw)
        if not value or value.lower() in _NON_VALUES:
            return None
        if field == "timeline":
            return find_timeline(value) or value
        if field == "budget":
            return find_budget(value) or value
        if field == "project_type":
            return find_project_type(value) or value
        if field == "name":
            words = [w for w in value.split() if w.lower() not in self.name_denylist]
            return _title_case(" ".join(words)) if words else None
        return value


def parse_structured_data(reply: str) -> tuple[Optional[StructuredData], str]:
    """
    Pull the hidden STRUCTURED_DATA block out of a generated reply.

    Returns (data, cleaned_reply). Every block is stripped from cleaned_reply.
    A block that is not a JSON object is treated as absent.
    """
    if not reply:
        return None, ""

    matches = list(STRUCTURED_DATA_PATTERN.finditer(reply))
    cleaned = STRUCTURED_DATA_PATTERN.sub("", reply).strip()
    if not matches:
        return None, cleaned

    raw = matches[-1].group(1).strip()
    try:
        payload = json.loads(raw)
    except (json.JSONDecodeError, ValueError) as e:
        logger.warning("Structured data block is not valid JSON: %s", str(e))
        return None, cleaned

    if not isinstance(payload, dict):
        logger.warning("Structured data block is not an object: %s", type(payload).__name__)
        return None, cleaned

    fields = {}
    for field in LEAD_FIELDS:
        key = "projectType" if field == "project_type" else field
        value = payload.get(key, payload.get(field))
        if value is None:
            continue
        fields[field] = str(value).strip()

    score = payload.get("score")
    try:
        fields["score"] = int(float(score)) if score not in (None, "") else None
    except (TypeError, ValueError, OverflowError):
        logger.debug("Ignoring non-numeric model score: %r", score)

    try:
        data = StructuredData(**fields)
    except ValueError as e:
        logger.warning("Structured data block failed validation: %s", str(e))
        return None, cleaned
    return data, cleaned


def merge_updates(heuristic: dict[str, str], model: dict[str, str]) -> dict[str, str]:
    """Model-assisted values override heuristic values for the same field."""
    merged = dict(heuristic)
    merged.update({field: value for field, value in model.items() if value})
    return merged


def apply_updates(lead: LeadData, status: FieldCollectionStatus, updates: dict[str, str]) -> list[str]:
    """Write updates into the lead, mark fields collected, return the fields whose value changed."""
    changed = []
    for field, value in updates.items():
        if field not in LEAD_FIELDS or not value:
            continue
        if getattr(lead, field) != value:
            setattr(lead, field, value)
            changed.append(field)
        setattr(status, field, True)
    return changed
