"""Member export to and import from spreadsheet-friendly CSV."""

import csv
from dataclasses import dataclass, field
from datetime import date, datetime
import io
import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..config import settings
from ..errors import ValidationFailed
from ..models import Company, Member
from .members import create_company, find_company_by_name

logger = logging.getLogger(__name__)

BOM = "\ufeff"

MEMBER_CSV_HEADERS = [
    "Voornaam",
    "Achternaam",
    "E-mail",
    "Telefoon",
    "Mobiel",
    "Adres",
    "Postcode",
    "Stad",
    "Land",
    "Persoonlijke URL",
    "Bedrijf",
    "Actief",
    "Ontvangt mail",
    "Lid sinds",
    "Notities",
]
REQUIRED_HEADERS = ("Voornaam", "Achternaam")

# Plain text columns -> Member attribute.
TEXT_COLUMNS = {
    "E-mail": "email",
    "Telefoon": "phone",
    "Mobiel": "mobile",
    "Adres": "address",
    "Postcode": "postal_code",
    "Stad": "city",
    "Persoonlijke URL": "personal_url",
    "Notities": "notes",
}

TRUE_VALUES = {"ja", "true", "1", "waar"}
FALSE_VALUES = {"nee", "false", "0", "onwaar"}


@dataclass
class ParsedMember:
    first_name: str
    last_name: str
    email: str | None = None
    phone: str | None = None
    mobile: str | None = None
    address: str | None = None
    postal_code: str | None = None
    city: str | None = None
    country: str | None = None
    personal_url: str | None = None
    company_name: str | None = None
    is_active: bool = True
    receives_mail: bool = True
    member_since: str | None = None
    notes: str | None = None


@dataclass
class ParseResult:
    members: list[ParsedMember] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


@dataclass
class ImportResult:
    imported: int = 0
    failed: int = 0
    companies_created: int = 0
    errors: list[str] = field(default_factory=list)


def format_bool(value: bool | None) -> str:
    return "Ja" if value else "Nee"


def format_date(value: date | None) -> str:
    return value.strftime("%d/%m/%Y") if value else ""


def export_members_csv(rows: list[tuple[Member, Company | None]]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(MEMBER_CSV_HEADERS)
    for member, company in rows:
        writer.writerow(
            [
                member.first_name,
                member.last_name,
                member.email or "",
                member.phone or "",
                member.mobile or "",
                member.address or "",
                member.postal_code or "",
                member.city or "",
                member.country or "",
                member.personal_url or "",
                company.name if company else "",
                format_bool(member.is_active),
                format_bool(member.receives_mail),
                format_date(member.member_since),
                member.notes or "",
            ]
        )
    return BOM + buffer.getvalue().rstrip("\n")


def load_export_rows(db: Session) -> list[tuple[Member, Company | None]]:
    return [
        (member, company)
        for member, company in db.execute(
            select(Member, Company)
            .outerjoin(Company, Member.company_id == Company.id)
            .order_by(Member.last_name, Member.first_name)
        ).all()
    ]


def template_csv() -> str:
    example = [
        "Jan",
        "Janssen",
        "jan@voorbeeld.be",
        "+32 2 123 45 67",
        "+32 470 12 34 56",
        "Hoofdstraat 123",
        "1000",
        "Brussel",
        "België",
        "https://www.jan.be",
        "Acme BV",
        "Ja",
        "Ja",
        "01/01/2024",
        "Voorbeeld notitie",
    ]
    return ",".join(MEMBER_CSV_HEADERS) + "\n" + ",".join(example)


def detect_delimiter(header_line: str) -> str:
    return ";" if header_line.count(";") > header_line.count(",") else ","


def parse_csv_line(line: str, delimiter: str = ",") -> list[str]:
    """Split one line into trimmed fields; quoted fields may hold the delimiter."""
    reader = csv.reader([line], delimiter=delimiter, quotechar='"', strict=False)
    return [value.strip() for value in next(reader, [])]


def parse_bool(value: str, default: bool) -> bool:
    lowered = value.strip().lower()
    if lowered in TRUE_VALUES:
        return True
    if lowered in FALSE_VALUES:
        return False
    return default


def parse_date(value: str) -> str | None:
    value = value.strip()
    if not value:
        return None
    try:
        return datetime.strptime(value, "%d/%m/%Y").date().isoformat()
    except ValueError:
        return value


def parse_members_csv(content: str) -> ParseResult:
    result = ParseResult()
    if content.startswith(BOM):
        content = content[len(BOM):]
    lines = [line for line in content.splitlines() if line.strip()]
    if len(lines) < 2:
        result.errors.append("CSV bestand is leeg of bevat alleen headers")
        return result

    delimiter = detect_delimiter(lines[0])
    headers = parse_csv_line(lines[0], delimiter)
    for required in REQUIRED_HEADERS:
        if required not in headers:
            result.errors.append(f"Verplichte kolom ontbreekt: {required}")
    if result.errors:
        return result

    index = {header: position for position, header in enumerate(headers)}
    for row_number, line in enumerate(lines[1:], start=2):
        values = parse_csv_line(line, delimiter)

        def get(header: str) -> str:
            position = index.get(header)
            if position is None or position >= len(values):
                return ""
            return values[position]

        first_name = get("Voornaam")
        last_name = get("Achternaam")
        if not first_name or not last_name:
            result.errors.append(
                f"Rij {row_number}: Voornaam en achternaam zijn verplicht"
            )
            continue

        parsed = ParsedMember(
            first_name=first_name,
            last_name=last_name,
            country=get("Land") or settings.default_country,
            company_name=get("Bedrijf") or None,
            is_active=parse_bool(get("Actief"), True),
            receives_mail=parse_bool(get("Ontvangt mail"), True),
            member_since=parse_date(get("Lid sinds")),
        )
        for header, attribute in TEXT_COLUMNS.items():
            setattr(parsed, attribute, get(header) or None)
        result.members.append(parsed)
    return result


def _member_since(value: str | None) -> date | None:
    if not value:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise ValidationFailed(f"Ongeldige datum: {value}") from exc


def import_members(db: Session, parsed: list[ParsedMember]) -> ImportResult:
    """Insert parsed rows one by one; earlier rows stay committed on failure."""
    result = ImportResult()
    companies: dict[str, int] = {}

    for position, row in enumerate(parsed, start=1):
        try:
            company_id = None
            if row.company_name:
                key = row.company_name.strip().lower()
                company_id = companies.get(key)
                if company_id is None:
                    company = find_company_by_name(db, row.company_name)
                    if company is None:
                        company = create_company(db, {"name": row.company_name})
                        result.companies_created += 1
                    company_id = companies[key] = company.id

            db.add(
                Member(
                    first_name=row.first_name,
                    last_name=row.last_name,
                    email=row.email,
                    phone=row.phone,
                    mobile=row.mobile,
                    address=row.address,
                    postal_code=row.postal_code,
                    city=row.city,
                    country=row.country,
                    personal_url=row.personal_url,
                    company_id=company_id,
                    is_active=row.is_active,
                    receives_mail=row.receives_mail,
                    member_since=_member_since(row.member_since),
                    notes=row.notes,
                )
            )
            db.commit()
            result.imported += 1
        except Exception as exc:
            db.rollback()
            logger.exception("Import of row %s (%s) failed", position, row.last_name)
            result.failed += 1
            result.errors.append(f"{row.first_name} {row.last_name}: {exc}")

    logger.info(
        "Member import finished: %s imported, %s failed", result.imported, result.failed
    )
    return result
