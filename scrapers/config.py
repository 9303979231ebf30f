"""
City portal configuration.

Adding a portal means adding an entry to CITIES; nothing is discovered at
run time. Per-city deltas (element ids, prefixes, tab layout) live in
`options` rather than in per-city code.
"""

from dataclasses import dataclass, field
from enum import Enum

from .utils import ConfigurationError


class ScraperType(str, Enum):
    DAILY = 'DAILY'        # Portal can be searched by date range
    MONTHLY = 'MONTHLY'    # Data only published as a monthly report
    ID_BASED = 'ID_BASED'  # Portal can only be searched by permit number


class StrategyKind(str, Enum):
    TABLE_DETAIL = 'table_detail'
    BATCH_PREFIX = 'batch_prefix'
    PDF_REPORT = 'pdf_report'
    SPA_FORM = 'spa_form'


@dataclass(frozen=True)
class CityConfig:
    name: str
    state: str
    url: str
    scraper_type: ScraperType
    strategy: StrategyKind
    enabled: bool = True
    options: dict = field(default_factory=dict)
    # Accela portals that can be searched by contractor license
    enrich_contractors: bool = False

    @property
    def slug(self) -> str:
        return city_slug(self.name)


def city_slug(name: str) -> str:
    """'Los Altos Hills' -> 'los_altos_hills'"""
    return '_'.join(name.lower().replace('-', ' ').split())


# Shared eTRAKiT search-page defaults; each city overrides what differs
ETRAKIT_DEFAULTS = {
    'year_suffix_digits': 2,
    'max_results_per_batch': 10,
    'suffix_digits': 3,
    'search_by_value': 'Permit #',
    'search_operator_value': 'BEGINS WITH',
    'search_button_selectors': ['#ctl00_cplMain_btnSearch', '#cplMain_btnSearch'],
    'permit_info_prefix': 'ctl02',
    'site_info_prefix': 'ctl03',
    'extract_title': False,
    'description_field': 'lblPermitDesc',
    'has_contacts_tab': False,
    'max_pages': 20,
    'next_page_selector': 'input.PagerButton.NextPage, input[id*="btnPageNext"]',
    'wait_after_page_click': 3.0,
    'table_only': False,
}


def _etrakit(**overrides) -> dict:
    return {**ETRAKIT_DEFAULTS, **overrides}


CITIES = {
    # ---------------- Accela (date range, table + detail pages) ----------------
    'los_gatos': CityConfig(
        name='Los Gatos',
        state='CA',
        url='https://aca-prod.accela.com/TLG/Cap/CapHome.aspx?module=Building&TabName=HOME',
        scraper_type=ScraperType.DAILY,
        strategy=StrategyKind.TABLE_DETAIL,
    ),
    'santa_clara': CityConfig(
        name='Santa Clara',
        state='CA',
        url='https://aca-prod.accela.com/SANTACLARA/Cap/CapHome.aspx?module=Building&TabName=Building',
        scraper_type=ScraperType.DAILY,
        strategy=StrategyKind.TABLE_DETAIL,
    ),
    'cupertino': CityConfig(
        name='Cupertino',
        state='CA',
        url='https://aca-prod.accela.com/CUPERTINO/Cap/CapHome.aspx?module=Building&TabName=Building',
        scraper_type=ScraperType.DAILY,
        strategy=StrategyKind.TABLE_DETAIL,
        enrich_contractors=True,
    ),
    'palo_alto': CityConfig(
        name='Palo Alto',
        state='CA',
        url='https://aca-prod.accela.com/PALOALTO/Cap/CapHome.aspx?module=Building&TabName=Building',
        scraper_type=ScraperType.DAILY,
        strategy=StrategyKind.TABLE_DETAIL,
        enrich_contractors=True,
    ),

    # ---------------- eTRAKiT (permit-number prefix batches) ----------------
    'saratoga': CityConfig(
        name='Saratoga',
        state='CA',
        url='https://saratoga-trk.aspgov.com/eTRAKiT/Search/permit.aspx',
        scraper_type=ScraperType.ID_BASED,
        strategy=StrategyKind.BATCH_PREFIX,
        options=_etrakit(
            base_prefixes=[''],
            search_by_value='PERMIT #',
            table_only=True,
            table_columns={
                'permit_number': 0,
                'applied_date': 1,
                'issued_date': 2,
                'status': 5,
                'address': 7,
                'description': 8,
                'value': 9,
                'contractor': 10,
            },
        ),
    ),
    'los_altos_hills': CityConfig(
        name='Los Altos Hills',
        state='CA',
        url='https://trakit.losaltoshills.ca.gov/etrakit/Search/permit.aspx',
        scraper_type=ScraperType.ID_BASED,
        strategy=StrategyKind.BATCH_PREFIX,
        options=_etrakit(
            base_prefixes=['', 'BLD', 'EP', 'GRD', 'MISC', 'OA', 'PKG'],
            table_only=True,
            # No status column; ISSUED column being filled is the signal
            status_from_issued_column=True,
            max_pages=27,
            table_columns={
                'permit_number': 0,
                'applied_date': 1,
                'issued_date': 3,
                'address': 9,
                'description': 10,
                'value': 11,
                'contractor': 13,
            },
        ),
    ),
    'morgan_hill': CityConfig(
        name='Morgan Hill',
        state='CA',
        url='https://morganhill-trk.aspgov.com/eTRAKiT/Search/permit.aspx',
        scraper_type=ScraperType.ID_BASED,
        strategy=StrategyKind.BATCH_PREFIX,
        options=_etrakit(
            base_prefixes=[
                'BCOM', 'BRES', 'ELEC', 'ENC', 'FIRE', 'GRD', 'IR',
                'MECH', 'MST', 'OCC', 'OSOW', 'PLMG', 'SOLR', 'SPEC',
            ],
            year_suffix_digits=4,
            search_by_value='Permit#',
            permit_info_prefix='ctl07',
            site_info_prefix='ctl08',
            # Contacts tab only shows up for logged-in users
            has_contacts_tab=True,
            max_pages=50,
            login_env='ETRAKIT_MORGAN_HILL',
        ),
    ),
    'milpitas': CityConfig(
        name='Milpitas',
        state='CA',
        url='https://etrakit.ci.milpitas.ca.gov/etrakit3/Search/permit.aspx',
        scraper_type=ScraperType.ID_BASED,
        strategy=StrategyKind.BATCH_PREFIX,
        options=_etrakit(
            base_prefixes=[
                'B-AC', 'B-AM', 'B-BP', 'B-DF', 'B-DM', 'B-EL', 'B-ES', 'B-EV',
                'B-FO', 'B-GR', 'B-IR', 'B-ME', 'B-MH', 'B-MU', 'B-OC', 'B-OT',
                'B-PA', 'B-PL', 'B-PS', 'B-RR', 'B-RV', 'B-RW', 'B-SG', 'B-SI',
                'B-SO', 'B-SW', 'B-TP', 'B-TS', 'B-UH', 'B-WP', 'E-EN',
            ],
            max_results_per_batch=100,
            suffix_digits=2,
            sequence_digits=4,
            search_by_value='Permit Number',
            search_button_selectors=['#cplMain_btnSearch', '#ctl00_cplMain_btnSearch'],
            extract_title=True,
            description_field='lblPermitNotes',
        ),
    ),
    'los_altos': CityConfig(
        name='Los Altos',
        state='CA',
        url='https://trakit.losaltosca.gov/eTRAKiT/Search/permit.aspx',
        scraper_type=ScraperType.ID_BASED,
        strategy=StrategyKind.BATCH_PREFIX,
        options=_etrakit(
            base_prefixes=[
                'ADR', 'BLD', 'E', 'LC', 'ONBLD', 'PAADU', 'PRADU',
                'PS', 'SE', 'SOLAR', 'SWO', 'TP', 'X',
            ],
            max_results_per_batch=100,
            suffix_digits=2,
            sequence_digits=5,
            search_by_value='Permit_Main.PERMIT_NO',
            permit_info_prefix='ctl07',
            site_info_prefix='ctl08',
            # Type goes in the title, subtype is appended to the description
            title_field='lblPermitType',
            subtype_field='lblPermitSubtype',
        ),
    ),

    # ---------------- Monthly PDF report ----------------
    'mountain_view': CityConfig(
        name='Mountain View',
        state='CA',
        url=(
            'https://www.mountainview.gov/our-city/departments/community-development/'
            'building-fire-inspection/building-general-information/permit-history/-folder-637'
        ),
        scraper_type=ScraperType.MONTHLY,
        strategy=StrategyKind.PDF_REPORT,
        options={
            'context_before': 100,
            'context_after': 200,
        },
    ),

    # ---------------- MGO Connect single-page app ----------------
    'campbell': CityConfig(
        name='Campbell',
        state='CA',
        url='https://www.mgoconnect.org/cp/portal',
        scraper_type=ScraperType.DAILY,
        strategy=StrategyKind.SPA_FORM,
        options={
            'state_name': 'California',
            'jurisdiction': 'Campbell',
        },
    ),

    # ---------------- Not scraped (classifier-only cities) ----------------
    'sunnyvale': CityConfig(
        name='Sunnyvale',
        state='CA',
        url='https://sunnyvaleca-energovpub.tylerhost.net/apps/SelfService',
        scraper_type=ScraperType.DAILY,
        strategy=StrategyKind.TABLE_DETAIL,
        enabled=False,
    ),
    'san_jose': CityConfig(
        name='San Jose',
        state='CA',
        url='https://data.sanjoseca.gov/api/3/action/datastore_search_sql',
        scraper_type=ScraperType.DAILY,
        strategy=StrategyKind.TABLE_DETAIL,
        enabled=False,
    ),
}


def get_city_config(name: str) -> CityConfig:
    """
    Look up a city by display name or slug (case-insensitive).

    Raises:
        ConfigurationError: city is not configured
    """
    config = CITIES.get(city_slug(name or ''))
    if config is None:
        raise ConfigurationError(
            f"City not found in configuration: {name}. Available: {', '.join(CITIES)}"
        )
    return config


def get_enabled_cities() -> list[CityConfig]:
    """Enabled cities in declaration order."""
    return [config for config in CITIES.values() if config.enabled]
