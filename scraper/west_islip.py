"""Source extractors for West Islip organizations."""
import logging
import re
from typing import List, Optional

from processor.models import RawExtraction, SourceProfile
from scraper.page import PageDocument

logger = logging.getLogger(__name__)

TOWN = 'West Islip'

LIBRARY_URL = 'https://westisliplibrary.libnet.info/events?r=days&n=60'
CHAMBER_URL = 'https://www.westislipchamber.org/events'
COUNTRY_FAIR_URL = 'https://westislipcountryfair.org/'
HISTORICAL_URL = 'https://www.westisliphistoricalsociety.org/index.php/events/eventsbyyear/{year}/-'
FIRE_DEPT_URL = 'https://westislipfd.com/events/category/public-event/list/'
WIBCC_URLS = ['https://wibcc.org/', 'https://wibcc.org/events']

LIBRARY = 'West Islip Public Library'
CHAMBER = 'West Islip Chamber of Commerce'
COUNTRY_FAIR = 'West Islip Country Fair'
HISTORICAL = 'West Islip Historical Society'
FIRE_DEPT = 'West Islip Fire Department'
WIBCC = 'West Islip Breast Cancer Coalition'

SHORT_MONTHS = r'(?:Jan|Feb|Mar|Apr|May|Jun|Jul|Aug|Sep|Oct|Nov|Dec)'
LONG_MONTHS = (
    r'(?:January|February|March|April|May|June|July|August|September|'
    r'October|November|December)'
)
WEEKDAYS = r'(?:Monday|Tuesday|Wednesday|Thursday|Friday|Saturday|Sunday)'
CLOCK = r'\d{1,2}:\d{2}\s*(?:AM|PM)'
DASH = r'\s*[-–—]\s*'

PROFILES = {
    LIBRARY: SourceProfile(
        name=LIBRARY,
        location_fallback='West Islip Public Library',
        default_category='library',
        category_rules=(
            (('children', 'kids', 'storytime'), 'library - children'),
            (('teen',), 'library - teens'),
            (('adult',), 'library - adults'),
            (('all ages', 'family'), 'library - all ages'),
        )
    ),
    CHAMBER: SourceProfile(
        name=CHAMBER,
        location_fallback='West Islip Chamber of Commerce Area',
        default_category='chamber',
        category_rules=(
            (('networking', 'mixer'), 'chamber - networking'),
            (('ribbon cutting', 'grand opening'), 'chamber - business opening'),
            (('festival', 'fair', 'street'), 'chamber - festival'),
        )
    ),
    COUNTRY_FAIR: SourceProfile(
        name=COUNTRY_FAIR,
        location_fallback='West Islip Public Library, West Islip, NY',
        default_category='community fair'
    ),
    HISTORICAL: SourceProfile(
        name=HISTORICAL,
        location_fallback='West Islip Historical Society',
        default_category='historical society',
        category_rules=(
            (('open',), 'historical society - open house'),
            (('meeting',), 'historical society - meeting'),
            (('lizzy',), 'historical society - special event'),
        )
    ),
    FIRE_DEPT: SourceProfile(
        name=FIRE_DEPT,
        location_fallback='West Islip Fire Department',
        default_category='fire department',
        category_rules=(
            (('comedy',), 'fire department - entertainment'),
            (('training',), 'fire department - training'),
            (('meeting',), 'fire department - meeting'),
            (('fundraiser',), 'fire department - fundraiser'),
            (('drill',), 'fire department - drill'),
            (('inspection',), 'fire department - safety'),
        )
    ),
    WIBCC: SourceProfile(
        name=WIBCC,
        location_fallback='West Islip Breast Cancer Coalition Area',
        default_category='wibcc - general',
        category_rules=(
            (('clam',), 'wibcc - clam shucking'),
            (('bowl',), 'wibcc - bowling'),
            (('ravioli',), 'wibcc - ravioli contest'),
            (('screening', 'mammogram'), 'wibcc - health screening'),
            (('pink', 'awareness'), 'wibcc - awareness'),
            (('walk', 'run'), 'wibcc - athletic'),
            (('fundraiser', 'benefit'), 'wibcc - fundraiser'),
        )
    ),
}


def first_match(text: str, patterns: List[re.Pattern]) -> str:
    """Return the first pattern match in text, or an empty string."""
    for pattern in patterns:
        match = pattern.search(text)
        if match:
            return match.group(0).strip()
    return ''


def meaningful_lines(text: str, min_length: int = 5) -> List[str]:
    return [line.strip() for line in text.split('\n') if len(line.strip()) > min_length]


def squash(text: str) -> str:
    return re.sub(r'\s+', ' ', text).strip()


def page_lines(doc: PageDocument) -> List[str]:
    """Return the non-blank lines of the page body, stripped."""
    return [line.strip() for line in doc.body_text('\n').split('\n') if line.strip()]


# Library

LIBRARY_DATE_PATTERNS = [
    re.compile(rf'\b{WEEKDAYS},?\s+{SHORT_MONTHS}[a-z]*\.?\s+\d{{1,2}}:\s*{CLOCK}{DASH}{CLOCK}', re.I),
    re.compile(rf'\b{WEEKDAYS},?\s+{SHORT_MONTHS}[a-z]*\.?\s+\d{{1,2}}:\s*{CLOCK}', re.I),
    re.compile(rf'\b{SHORT_MONTHS}[a-z]*\.?\s+\d{{1,2}}:\s*{CLOCK}', re.I),
    re.compile(rf'\b{SHORT_MONTHS}[a-z]*\.?\s+\d{{1,2}}\b', re.I),
]
AGE_GROUP_RE = re.compile(r'Age group:\s*(.*?)(?=\s*event type:|$)', re.I | re.S)
EVENT_TYPE_RE = re.compile(r'event type:\s*([^\n]*)', re.I)


def parse_library(doc: PageDocument) -> List[RawExtraction]:
    """Extract library events from the .eelistevent listing."""
    events = []

    for element in doc.soup.select('.eelistevent'):
        text = element.get_text('\n')
        if len(text.strip()) < 30:
            continue

        lines = meaningful_lines(text)
        raw_title = lines[0] if lines else ''
        title = _library_title(raw_title)

        age_match = AGE_GROUP_RE.search(text)
        age_group = squash(age_match.group(1)) if age_match else ''
        type_match = EVENT_TYPE_RE.search(text)
        event_type = squash(type_match.group(1)) if type_match else ''

        description = text.replace(raw_title, '', 1)
        description = re.sub(r'Age group:.*', '', description, flags=re.I | re.S)
        description = squash(description)
        if len(description) < 20:
            description = f"{title} at the West Islip Public Library."
            if age_group:
                description += f" Age group: {age_group}."
            if event_type:
                description += f" Event type: {event_type}."

        url = ''
        link = element.select_one('a[href]')
        if link and '#calendar' not in link['href']:
            url = doc.absolute_url(link['href'])

        if 5 < len(title) < 200:
            events.append(RawExtraction(
                title_text=title,
                description_text=description,
                date_text=first_match(text, LIBRARY_DATE_PATTERNS),
                location_text='West Islip Public Library',
                url_text=url,
                source_name=LIBRARY
            ))

    return events


LIBRARY_TITLE_BOUNDARIES = [
    rf'\s+{WEEKDAYS}\b',
    rf'\s+{SHORT_MONTHS}[a-z]*\.?\s+\d',
]


def _library_title(raw_title: str) -> str:
    for boundary in LIBRARY_TITLE_BOUNDARIES:
        match = re.match(rf'^(.+?)(?={boundary})', raw_title, re.I)
        if match and len(match.group(1)) > 5:
            return match.group(1).strip().rstrip(':-').strip()
    title = raw_title[:80] if len(raw_title) > 80 else raw_title
    return title.strip().rstrip(':-').strip()


def scrape_library(page) -> List[RawExtraction]:
    return page.fetch(LIBRARY_URL).evaluate(parse_library)


# Chamber of Commerce

CHAMBER_SELECTORS = [
    '.event-item',
    '.event-card',
    '[class*="event"]',
    '.tribe-events-list-event-title',
    'h3 a[href]',
    'h2 a[href]',
    'article a[href]',
]
CHAMBER_DATE_PATTERNS = [
    re.compile(rf'{SHORT_MONTHS}[a-z]*\.?\s+\d{{1,2}},?\s*\d{{4}},?\s*{CLOCK}{DASH}{CLOCK}', re.I),
    re.compile(rf'{SHORT_MONTHS}[a-z]*\.?\s+\d{{1,2}},?\s*\d{{4}},?\s*{CLOCK}', re.I),
    re.compile(rf'{SHORT_MONTHS}[a-z]*\.?\s+\d{{1,2}},?\s*\d{{4}}', re.I),
]
CHAMBER_LISTING_RE = re.compile(
    rf'([^.\n]+?)\s+({SHORT_MONTHS}\s+\d{{1,2}},\s*\d{{4}}(?:,?\s*{CLOCK}(?:{DASH}{CLOCK})?)?)([^.\n]*)',
    re.I
)


def parse_chamber(doc: PageDocument) -> List[RawExtraction]:
    """Extract chamber events from event containers, else from page text."""
    events = []

    for selector in CHAMBER_SELECTORS:
        for element in doc.soup.select(selector):
            text = element.get_text()
            if element.name == 'a' and element.get('href'):
                title = text.strip()
                url = doc.absolute_url(element['href'])
            else:
                link = element.select_one('a[href]')
                if link:
                    title = link.get_text().strip() or text.strip()
                    url = doc.absolute_url(link['href'])
                else:
                    title = text.strip()
                    url = ''

            title = squash(title)
            if 10 < len(title) < 200:
                events.append(RawExtraction(
                    title_text=title,
                    description_text=squash(text)[:500],
                    date_text=first_match(text, CHAMBER_DATE_PATTERNS),
                    location_text='West Islip Chamber of Commerce Area',
                    url_text=url,
                    source_name=CHAMBER
                ))
        if events:
            return events

    return _chamber_from_text(doc)


def _chamber_from_text(doc: PageDocument) -> List[RawExtraction]:
    body = '\n'.join(page_lines(doc))
    section = re.search(r'Upcoming Events(.{1,3000}?)(?=Contact|Footer|$)', body, re.S)
    if not section:
        return []

    events = []
    for match in CHAMBER_LISTING_RE.finditer(section.group(1)):
        title = match.group(1).strip()
        if len(title) <= 5:
            continue
        location = re.sub(r'Learn more.*$', '', match.group(3), flags=re.I).strip(' -–—')
        events.append(RawExtraction(
            title_text=title[:150],
            description_text=match.group(0)[:500],
            date_text=match.group(2),
            location_text=location,
            url_text=_link_for_title(doc, title),
            source_name=CHAMBER
        ))
    return events


def _link_for_title(doc: PageDocument, title: str) -> str:
    """Find a link whose text shares one of the title's first words."""
    words = [word for word in title.lower().split(' ')[:3] if len(word) > 3]
    for link in doc.soup.select('a[href]'):
        link_text = link.get_text().lower()
        if any(word in link_text for word in words):
            return doc.absolute_url(link['href'])
    return ''


def scrape_chamber(page) -> List[RawExtraction]:
    return page.fetch(CHAMBER_URL).evaluate(parse_chamber)


# Country Fair

FAIR_DATE_RE = re.compile(r'(?:Sept|September)\s+\d{1,2}(?:st|nd|rd|th)?\s*,?\s*\d{4}', re.I)
FAIR_HOURS_RE = re.compile(r'\d{1,2}\s*AM\s*-\s*\d{1,2}\s*PM', re.I)
FAIR_RAIN_DATE_RE = re.compile(
    r'Rain date[:\s]*(?:Sept|September)\s+\d{1,2}(?:st|nd|rd|th)?\s*,?\s*\d{4}', re.I
)
FAIR_HIGHLIGHTS = [
    'Live music on the stage',
    'Childrens area with Bounce, Slide, Magician, Face Painting',
    'Italian, Polish, Greek, Crepes, Philly Cheese Steaks, Hot Dogs, Hamburgers, '
    "Roasted Corn, Funnel Cakes, Ices, Smoothies, Fried Oreo's",
]


def parse_country_fair(doc: PageDocument) -> List[RawExtraction]:
    """The fair is a single annual event announced on its home page."""
    body = doc.body_text(' ')

    date_match = FAIR_DATE_RE.search(body)
    if not date_match:
        return []

    date_text = date_match.group(0)
    hours_match = FAIR_HOURS_RE.search(body)
    if hours_match:
        date_text += f", {hours_match.group(0)}"

    description = (
        f"Annual West Islip Country Fair featuring {', '.join(FAIR_HIGHLIGHTS)} and more! "
        "Family-friendly community event with food, entertainment, and activities for all ages."
    )
    rain_match = FAIR_RAIN_DATE_RE.search(body)
    if rain_match:
        description += f" {rain_match.group(0)}."

    return [RawExtraction(
        title_text='West Islip Country Fair',
        description_text=description,
        date_text=date_text,
        location_text='West Islip Public Library, West Islip, NY',
        url_text=COUNTRY_FAIR_URL,
        source_name=COUNTRY_FAIR
    )]


def scrape_country_fair(page) -> List[RawExtraction]:
    return page.fetch(COUNTRY_FAIR_URL).evaluate(parse_country_fair)


# Historical Society

HISTORICAL_RANGE_RE = re.compile(
    rf'{WEEKDAYS},?\s+{LONG_MONTHS}\s+\d{{1,2}},?\s+\d{{4}}\s+\d{{1,2}}:\d{{2}}(?:am|pm){DASH}\d{{1,2}}:\d{{2}}(?:am|pm)',
    re.I
)
HISTORICAL_DATE_RE = re.compile(rf'{WEEKDAYS},?\s+{LONG_MONTHS}\s+\d{{1,2}},?\s+\d{{4}}', re.I)
HISTORICAL_HOURS_RE = re.compile(rf'\d{{1,2}}:\d{{2}}(?:am|pm){DASH}\d{{1,2}}:\d{{2}}(?:am|pm)', re.I)
HISTORICAL_DESCRIPTIONS = [
    ('history center open',
     'Visit the West Islip History Center! Explore local historical exhibits, artifacts, '
     'and learn about the rich heritage of our community. Free and open to the public.'),
    ('general meeting',
     'West Islip Historical Society General Meeting. All community members are welcome to '
     'attend and learn about local history preservation efforts and upcoming events.'),
    ('lizzy',
     'Special community event celebrating Lizzy the Lion and West Islip local history. '
     'Family-friendly activities and historical presentations.'),
]


def parse_historical(doc: PageDocument) -> List[RawExtraction]:
    """Extract events from the society's event-detail links."""
    events = []

    for link in doc.soup.select('a[href*="eventdetail"]'):
        link_text = link.get_text().strip()
        if len(link_text) < 5:
            continue

        context = _dated_ancestor_text(link)
        title = re.sub(r'::.*$', '', link_text).strip()

        date_text = first_match(context, [HISTORICAL_RANGE_RE])
        if not date_text:
            date_text = first_match(context, [HISTORICAL_DATE_RE])
            hours = first_match(context, [HISTORICAL_HOURS_RE])
            if date_text and hours:
                date_text = f"{date_text} {hours}"

        description = f"{title} at the West Islip Historical Society."
        for keyword, text in HISTORICAL_DESCRIPTIONS:
            if keyword in title.lower():
                description = text
                break

        events.append(RawExtraction(
            title_text=title,
            description_text=description,
            date_text=date_text,
            location_text='West Islip Historical Society',
            url_text=doc.absolute_url(link['href']),
            source_name=HISTORICAL
        ))

    return events


def _dated_ancestor_text(element, levels: int = 5) -> str:
    """Return the text of the nearest ancestor that carries a date."""
    parent = element.parent
    for _ in range(levels):
        if parent is None:
            break
        text = squash(parent.get_text(' '))
        if HISTORICAL_DATE_RE.search(text):
            return text
        parent = parent.parent
    return ''


def make_historical_scraper(year: int):
    """Build the historical society extractor for one year's listing."""
    def scrape_historical(page) -> List[RawExtraction]:
        return page.fetch(HISTORICAL_URL.format(year=year)).evaluate(parse_historical)
    return scrape_historical


# Fire Department

FIRE_SELECTORS = [
    '.event-item',
    '.event-card',
    '.tribe-events-list-event',
    '[class*="event"]',
    '.ec-event',
    '.calendar-event',
    'article[class*="event"]',
    '[data-event]',
]
FIRE_TITLE_SELECTORS = [
    'h1', 'h2', 'h3', 'h4', '.event-title', '[class*="title"]', '.tribe-events-list-event-title'
]
FIRE_DATE_PATTERNS = [
    re.compile(rf'{LONG_MONTHS}\s+\d{{1,2}}\s*@\s*{CLOCK}\s*-\s*{CLOCK}', re.I),
    re.compile(rf'{LONG_MONTHS}\s+\d{{1,2}}\s*@\s*{CLOCK}', re.I),
    re.compile(rf'{LONG_MONTHS}\s+\d{{1,2}},?\s*\d{{4}}', re.I),
    re.compile(rf'{SHORT_MONTHS}\s+\d{{1,2}},?\s*\d{{4}}', re.I),
]
FIRE_LOCATION_PATTERNS = [
    re.compile(r'\d+\s+Union\s+Blvd', re.I),
    re.compile(r'West\s+Islip\s+Fire\s+Department\s+HQ', re.I),
    re.compile(r'Fire\s+Department\s+HQ', re.I),
    re.compile(r'\d+\s+\w+\s+(?:Ave|Avenue|St|Street|Blvd|Boulevard|Dr|Drive|Rd|Road)\b', re.I),
]
FIRE_TEXT_TITLE_RE = re.compile(r'comedy\s+night|fundraiser|event|meeting|training|drill', re.I)
FIRE_TEXT_DATE_RE = re.compile(rf'{LONG_MONTHS}\s+\d{{1,2}}\s*@?\s*{CLOCK}', re.I)
PRICE_RE = re.compile(r'\$\d+')


def parse_fire_department(doc: PageDocument) -> List[RawExtraction]:
    """Extract fire department events from the public events calendar."""
    for selector in FIRE_SELECTORS:
        events = [
            event for event in
            (_fire_event_from_element(doc, element) for element in doc.soup.select(selector))
            if event is not None
        ]
        if events:
            return events

    return _fire_events_from_text(doc)


def _fire_event_from_element(doc: PageDocument, element) -> Optional[RawExtraction]:
    text = element.get_text('\n')
    flat = squash(text)
    if not 30 < len(flat) < 1000:
        return None

    title = ''
    for selector in FIRE_TITLE_SELECTORS:
        title_el = element.select_one(selector)
        if title_el and title_el.get_text().strip():
            title = squash(title_el.get_text())
            break
    if not title:
        lines = meaningful_lines(text)
        title = lines[0][:100] if lines else ''

    date_text = first_match(flat, FIRE_DATE_PATTERNS)
    if len(title) <= 5 or not date_text:
        return None

    price_match = PRICE_RE.search(flat)
    price = f" - {price_match.group(0)}" if price_match else ''

    link = element.select_one('a[href]')
    url = ''
    if link and not link['href'].startswith('javascript:'):
        url = doc.absolute_url(link['href'])

    return RawExtraction(
        title_text=title,
        description_text=f"{title} at the West Islip Fire Department.{price} {flat[:200]}".strip(),
        date_text=date_text,
        location_text=first_match(flat, FIRE_LOCATION_PATTERNS),
        url_text=url or doc.url,
        source_name=FIRE_DEPT
    )


def _fire_events_from_text(doc: PageDocument) -> List[RawExtraction]:
    lines = page_lines(doc)
    events = []

    for index, line in enumerate(lines):
        if not FIRE_TEXT_TITLE_RE.search(line):
            continue
        context = ' '.join(lines[max(0, index - 2):index + 5])
        date_match = FIRE_TEXT_DATE_RE.search(context)
        if not date_match:
            continue
        events.append(RawExtraction(
            title_text=line,
            description_text=f"{line} - West Islip Fire Department event. {context[:150]}",
            date_text=date_match.group(0),
            location_text='West Islip Fire Department HQ, 309 Union Blvd',
            url_text=doc.url,
            source_name=FIRE_DEPT
        ))

    return events


def scrape_fire_department(page) -> List[RawExtraction]:
    return page.fetch(FIRE_DEPT_URL).evaluate(parse_fire_department)


# Breast Cancer Coalition

WIBCC_KEYWORDS = [
    'fundraiser', 'event', 'contest', 'celebration', 'awareness', 'screening',
    'clam shucking', 'bowling', 'ravioli', 'walk', 'run', 'auction', 'gala',
    'benefit', 'charity', 'coalition', 'support', 'pink', 'breast cancer',
    'mammogram', 'health', 'wellness', 'survivor', 'memorial', 'honor',
]
WIBCC_SELECTORS = [
    '[class*="event"]', '[id*="event"]', '[class*="Event"]',
    '.announcement', '.news', '.upcoming', '.calendar',
    '.post', '.update', '.notice', 'article', '.content-block',
]
WIBCC_DATE_PATTERNS = [
    re.compile(rf'\b{LONG_MONTHS}\s+\d{{1,2}}(?:st|nd|rd|th)?,?\s*\d{{4}}\b', re.I),
    re.compile(rf'\b{SHORT_MONTHS}[a-z]*\.?\s+\d{{1,2}}(?:st|nd|rd|th)?(?:,?\s*\d{{4}})?\b', re.I),
    re.compile(r'\b\d{1,2}/\d{1,2}/(?:\d{4}|\d{2})\b'),
    re.compile(rf'\b{WEEKDAYS},?\s+{LONG_MONTHS}\s+\d{{1,2}}(?:st|nd|rd|th)?\b', re.I),
]
WIBCC_LOCATION_KEYWORDS = ['marina', 'hospital', 'lanes', 'center', 'library', 'hall']


def parse_wibcc(doc: PageDocument) -> List[RawExtraction]:
    """Detect coalition events from announcement blocks, else from paragraphs."""
    events = []

    for selector in WIBCC_SELECTORS:
        for element in doc.soup.select(selector):
            text = element.get_text('\n')
            flat = squash(text)
            if not 50 < len(flat) < 1000 or not _mentions_event(flat):
                continue
            date_text = first_match(flat, WIBCC_DATE_PATTERNS)
            if not date_text:
                continue

            lines = meaningful_lines(text, min_length=10)
            title = re.sub(r'^\W+|\W+$', '', lines[0][:150]) if lines else ''
            if len(title) <= 10:
                continue

            link = element.select_one('a[href]')
            url = doc.url
            if link and not link['href'].startswith('javascript:'):
                url = doc.absolute_url(link['href'])

            events.append(RawExtraction(
                title_text=title,
                description_text=flat[:400],
                date_text=date_text,
                location_text=_wibcc_location(flat),
                url_text=url,
                source_name=WIBCC
            ))

    if events:
        return events
    return _wibcc_from_paragraphs(doc)


def _mentions_event(text: str) -> bool:
    lowered = text.lower()
    return any(keyword in lowered for keyword in WIBCC_KEYWORDS)


def _wibcc_location(text: str) -> str:
    lowered = text.lower()
    for keyword in WIBCC_LOCATION_KEYWORDS:
        if keyword in lowered:
            match = re.search(rf'[^.]*{keyword}[^.]*', text, re.I)
            if match:
                return match.group(0).strip()[:100]
    return ''


def _wibcc_from_paragraphs(doc: PageDocument) -> List[RawExtraction]:
    paragraphs = [
        paragraph.strip() for paragraph in re.split(r'\n\s*\n+', doc.body_text('\n'))
        if len(paragraph.strip()) > 30
    ]
    events = []

    for paragraph in paragraphs:
        if not _mentions_event(paragraph):
            continue
        date_text = first_match(paragraph, WIBCC_DATE_PATTERNS)
        if not date_text:
            continue
        title = re.split(r'[.!?]', paragraph)[0].strip()
        if len(title) > 100:
            title = title[:100] + '...'
        if len(title) <= 15:
            continue
        events.append(RawExtraction(
            title_text=title,
            description_text=squash(paragraph)[:350],
            date_text=date_text,
            url_text=doc.url,
            source_name=WIBCC
        ))

    return events


def scrape_wibcc(page) -> List[RawExtraction]:
    """Check each coalition page; one unreachable page does not sink the rest."""
    events = []
    for url in WIBCC_URLS:
        try:
            events.extend(page.fetch(url).evaluate(parse_wibcc))
        except Exception as e:
            logger.warning(f"Failed to scrape {url}: {e}")
            continue
    return events
