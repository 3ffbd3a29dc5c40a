"""Ready-made field maps for common CRM objects.

Each map translates an internal record to the vendor's field names when used
forward, and back when used with ``reverse=True``:

    from syncbridge.outbound.maps import SALESFORCE_CONTACT_MAP

    payload = FieldMapper.map(contact, SALESFORCE_CONTACT_MAP)

Maps are plain dictionaries. Copy one and add entries to extend it for custom
fields.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

# ISO 3166-1 alpha-2 code -> country name as Salesforce state and country
# picklists expect it
COUNTRIES = {
    "AR": "Argentina",
    "AU": "Australia",
    "BR": "Brazil",
    "CA": "Canada",
    "CL": "Chile",
    "CN": "China",
    "CO": "Colombia",
    "DE": "Germany",
    "EC": "Ecuador",
    "ES": "Spain",
    "FR": "France",
    "GB": "United Kingdom",
    "IE": "Ireland",
    "IN": "India",
    "IT": "Italy",
    "JP": "Japan",
    "MX": "Mexico",
    "NL": "Netherlands",
    "PA": "Panama",
    "PE": "Peru",
    "PT": "Portugal",
    "US": "United States",
    "UY": "Uruguay",
    "VE": "Venezuela",
}

US_STATES = {
    "AL": "Alabama",
    "AK": "Alaska",
    "AZ": "Arizona",
    "AR": "Arkansas",
    "CA": "California",
    "CO": "Colorado",
    "CT": "Connecticut",
    "DE": "Delaware",
    "DC": "District of Columbia",
    "FL": "Florida",
    "GA": "Georgia",
    "HI": "Hawaii",
    "ID": "Idaho",
    "IL": "Illinois",
    "IN": "Indiana",
    "IA": "Iowa",
    "KS": "Kansas",
    "KY": "Kentucky",
    "LA": "Louisiana",
    "ME": "Maine",
    "MD": "Maryland",
    "MA": "Massachusetts",
    "MI": "Michigan",
    "MN": "Minnesota",
    "MS": "Mississippi",
    "MO": "Missouri",
    "MT": "Montana",
    "NE": "Nebraska",
    "NV": "Nevada",
    "NH": "New Hampshire",
    "NJ": "New Jersey",
    "NM": "New Mexico",
    "NY": "New York",
    "NC": "North Carolina",
    "ND": "North Dakota",
    "OH": "Ohio",
    "OK": "Oklahoma",
    "OR": "Oregon",
    "PA": "Pennsylvania",
    "RI": "Rhode Island",
    "SC": "South Carolina",
    "SD": "South Dakota",
    "TN": "Tennessee",
    "TX": "Texas",
    "UT": "Utah",
    "VT": "Vermont",
    "VA": "Virginia",
    "WA": "Washington",
    "WV": "West Virginia",
    "WI": "Wisconsin",
    "WY": "Wyoming",
}

STATES_BY_COUNTRY = {"US": US_STATES}


def _code_for(name: Any, names: Mapping[str, str]) -> str | None:
    for code, candidate in names.items():
        if candidate == name:
            return code
    return None


def _country_code(record: Mapping[str, Any]) -> str | None:
    country = (record.get("address") or {}).get("country")
    return str(country).upper() if country else None


def _street_with_neighborhood(value: Any, record: Mapping[str, Any]) -> Any:
    neighborhood = (record.get("address") or {}).get("neighborhood")
    return f"{value}, {neighborhood}" if neighborhood else value


def _country_name(value: Any, record: Mapping[str, Any]) -> str | None:
    # Unknown codes are omitted; Salesforce rejects values outside its picklist
    return COUNTRIES.get(str(value).upper())


def _state_name(value: Any, record: Mapping[str, Any]) -> str | None:
    states = STATES_BY_COUNTRY.get(_country_code(record) or "")
    if states is None:
        return None
    return states.get(str(value).upper())


def _coordinate(value: Any, record: Mapping[str, Any]) -> float | None:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _street_only(value: Any, record: Mapping[str, Any]) -> Any:
    street, _, _ = str(value).partition(",")
    return street.strip()


def _country_from_name(value: Any, record: Mapping[str, Any]) -> str | None:
    return _code_for(value, COUNTRIES)


def _state_from_name(value: Any, record: Mapping[str, Any]) -> str | None:
    country = _code_for(record.get("MailingCountry"), COUNTRIES)
    states = STATES_BY_COUNTRY.get(country or "")
    return _code_for(value, states) if states else None


SALESFORCE_CONTACT_MAP: dict[str, Any] = {
    "firstName": "FirstName",
    "lastName": "LastName",
    "email": "Email",
    "jobTitle": "Title",
    "mobile": "MobilePhone",
    "assignee": "OwnerId",
    "address.street": "MailingStreet",
    "address.city": "MailingCity",
    "address.state": "MailingState",
    "address.postalCode": "MailingPostalCode",
    "address.country": "MailingCountry",
    "address.location.lat": "MailingLatitude",
    "address.location.long": "MailingLongitude",
    "transforms": {
        # Forward, keyed by Salesforce field
        "MailingStreet": _street_with_neighborhood,
        "MailingCountry": _country_name,
        "MailingState": _state_name,
        "MailingLatitude": _coordinate,
        "MailingLongitude": _coordinate,
        # Reverse, keyed by internal path
        "address.street": _street_only,
        "address.country": _country_from_name,
        "address.state": _state_from_name,
    },
}

SALESFORCE_OPPORTUNITY_MAP: dict[str, Any] = {
    "dealName": "Name",
    "closeDate": "CloseDate",
    "assignee": "OwnerId",
    "contact": "ContactId",
    "company": "AccountId",
    "stage": "StageName",
    "source": "LeadSource",
}

HUBSPOT_CONTACT_MAP: dict[str, Any] = {
    "firstName": "firstname",
    "lastName": "lastname",
    "email": "email",
    "phone": "phone",
    "mobile": "mobilephone",
    "jobTitle": "jobtitle",
    "address.street": "address",
    "address.city": "city",
    "address.state": "state",
    "address.postalCode": "zip",
    "address.country": "country",
    "website": "website",
    "lifecycleStage": "lifecyclestage",
    "status": "hs_lead_status",
}

HUBSPOT_COMPANY_MAP: dict[str, Any] = {
    "companyName": "name",
    "website": "domain",
    "primaryPhone": "phone",
    "address.street": "address",
    "address.city": "city",
    "address.state": "state",
    "address.postalCode": "zip",
    "address.country": "country",
    "industry": "industry",
    "companyType": "type",
    "description": "description",
    "revenue": "annualrevenue",
    "employees": "numberofemployees",
    "locale.timezone": "timezone",
    "locale.currency": "currency",
}

# dealstage and pipeline take HubSpot internal ids; add a transform for
# portals whose stages differ from the internal names.
HUBSPOT_DEAL_MAP: dict[str, Any] = {
    "dealName": "dealname",
    "proposal.quote.total": "amount",
    "stage": "dealstage",
    "pipeline": "pipeline",
    "closeDate": "closedate",
    "source": "hs_lead_source",
    "proposal.quote.quoteCurrency": "deal_currency_code",
    "proposal.title": "description",
    "priority": "hs_priority",
}
