"""
Reference data loaded into a fresh database.

Facts name their city and topic rather than ids; ``HistoryStore.seed()``
resolves the names after the lookup tables are filled.
"""

from __future__ import annotations

CITIES: list[dict] = [
    {
        "name": "Beaumont", "county": "Jefferson", "founded_year": 1838,
        "founding_story": (
            "Named after Mary Dewburleigh Beaumont, wife of businessman Henry "
            "Millard. Transformed by the 1901 Spindletop oil discovery."
        ),
    },
    {
        "name": "Port Arthur", "county": "Jefferson", "founded_year": 1895,
        "founding_story": (
            "Founded by railroad entrepreneur Arthur Stilwell, who named it after "
            "himself. Became major refinery center after Spindletop."
        ),
    },
    {
        "name": "Orange", "county": "Orange", "founded_year": 1836,
        "founding_story": (
            "Named for wild orange groves along the Sabine River. Originally "
            "called Green's Bluff, then Madison, before Orange in 1858."
        ),
    },
    {
        "name": "Nederland", "county": "Jefferson", "founded_year": 1897,
        "founding_story": (
            "Founded by Dutch immigrants, the name means \"Netherland\" in Dutch. "
            "Rice and canal-based farming community."
        ),
    },
    {
        "name": "Port Neches", "county": "Jefferson", "founded_year": 1927,
        "founding_story": (
            "Named after the Neches River. Incorporated as refineries expanded "
            "in the Golden Triangle."
        ),
    },
    {
        "name": "Groves", "county": "Jefferson", "founded_year": 1933,
        "founding_story": (
            "Named after local landowner Ella Groves. Developed as oil industry "
            "support city."
        ),
    },
    {
        "name": "Vidor", "county": "Orange", "founded_year": 1906,
        "founding_story": "Founded by Charles Vidor, a lumber magnate from Austria-Hungary.",
    },
    {
        "name": "Bridge City", "county": "Orange", "founded_year": 1970,
        "founding_story": (
            "Named for its location near the Rainbow Bridge. Youngest city in "
            "the Golden Triangle."
        ),
    },
]

TOPICS: list[dict] = [
    {"name": "Oil & Energy", "description": "The petroleum industry that transformed Southeast Texas", "icon": "⚡"},
    {"name": "Lumber Industry", "description": "The sawmill and timber era that built the region", "icon": "🌲"},
    {"name": "Shipbuilding", "description": "Naval and commercial shipbuilding heritage", "icon": "🚢"},
    {"name": "Cajun Culture", "description": "French Acadian cultural influence and heritage", "icon": "🎭"},
    {"name": "Native American", "description": "Indigenous peoples including Atakapa and Karankawa", "icon": "🪶"},
    {"name": "Civil War", "description": "Southeast Texas during the American Civil War", "icon": "⚔️"},
    {"name": "Hurricanes", "description": "Major storms that shaped the region's history", "icon": "🌪️"},
    {"name": "Railroad", "description": "Railroad development and transportation", "icon": "🚂"},
    {"name": "Education", "description": "Schools, universities, and educational development", "icon": "📚"},
    {"name": "Music & Arts", "description": "Musical heritage from blues to Cajun music", "icon": "🎵"},
]

PERIODS: list[dict] = [
    {"name": "Pre-Settlement Era", "start_year": 0, "end_year": 1830,
     "description": "Native American period before European settlement",
     "significance": "Atakapa and other indigenous peoples inhabited the region"},
    {"name": "Early Settlement", "start_year": 1830, "end_year": 1860,
     "description": "First European-American settlers arrive",
     "significance": "Cities founded, agriculture established"},
    {"name": "Civil War Era", "start_year": 1861, "end_year": 1865,
     "description": "American Civil War period",
     "significance": "Battle of Sabine Pass and Confederate Texas"},
    {"name": "Reconstruction", "start_year": 1865, "end_year": 1877,
     "description": "Post-war recovery and rebuilding",
     "significance": "Economic transition, railroad expansion"},
    {"name": "Lumber Boom", "start_year": 1880, "end_year": 1930,
     "description": "Peak of lumber industry",
     "significance": "Orange became major sawmill center, economic prosperity"},
    {"name": "Spindletop Era", "start_year": 1901, "end_year": 1940,
     "description": "Oil discovery and early petroleum industry",
     "significance": "Transformed Texas economy, birth of major oil companies"},
    {"name": "World War II", "start_year": 1941, "end_year": 1945,
     "description": "Wartime shipbuilding and industry",
     "significance": "Orange shipyards built hundreds of vessels, major economic boom"},
    {"name": "Petrochemical Expansion", "start_year": 1945, "end_year": 1980,
     "description": "Refineries and chemical plants expand",
     "significance": "Golden Triangle becomes major refining center"},
    {"name": "Modern Era", "start_year": 1980, "end_year": 2025,
     "description": "Diversification and hurricane challenges",
     "significance": "Economic diversification, major hurricanes (Rita, Ike, Harvey, Laura)"},
]

FACTS: list[dict] = [
    {
        "title": "Spindletop Oil Gusher Erupts",
        "content": (
            "On January 10, 1901, at Spindletop Hill near Beaumont, the Lucas Gusher "
            "erupted, shooting oil over 100 feet into the air. The well flowed an "
            "estimated 100,000 barrels per day for nine days before being capped. "
            "This discovery launched the modern petroleum industry and transformed "
            "Texas from a rural agricultural state into an industrial powerhouse."
        ),
        "event_date": "1901-01-10", "event_year": 1901,
        "city": "Beaumont", "topic": "Oil & Energy",
        "source_name": "Texas State Historical Association", "importance": 10,
        "image_url": "/images/historical/spindletop-lucas-gusher-1901.jpg",
    },
    {
        "title": "Beaumont Population Explosion",
        "content": (
            "Following the Spindletop discovery, Beaumont's population exploded from "
            "10,000 to over 50,000 in just a few months. By the end of 1902, more "
            "than 500 oil companies had been formed and 285 wells were in operation "
            "around Beaumont."
        ),
        "event_date": "1901", "event_year": 1901,
        "city": "Beaumont", "topic": "Oil & Energy",
        "source_name": "Spindletop Museum", "importance": 8,
        "image_url": "/images/historical/queen-of-waco-gusher-1901.jpg",
    },
    {
        "title": "Port Arthur Refineries Established",
        "content": (
            "Gulf Oil in 1901 and Texaco in 1902 built major refineries at Port "
            "Arthur to process crude oil from Spindletop and other fields. By 1916, "
            "the Port Arthur refinery was one of the three largest in the United "
            "States."
        ),
        "event_date": "1901", "event_year": 1901,
        "city": "Port Arthur", "topic": "Oil & Energy",
        "source_name": "Texas State Historical Association", "importance": 9,
        "image_url": "/images/historical/port-arthur-refinery.jpg",
    },
    {
        "title": "Orange Lumber Industry Peak",
        "content": (
            "By the 1880s, Orange was recognized as the leader in East Texas sawmill "
            "activity with seventeen steam sawmills operating. Companies like H.J. "
            "Lutcher and G.B. Moore made Orange the center of the Texas lumbering "
            "district."
        ),
        "event_date": "1880", "event_year": 1880,
        "city": "Orange", "topic": "Lumber Industry",
        "source_name": "Texas State Historical Association", "importance": 8,
    },
    {
        "title": "Orange Shipbuilding in World War II",
        "content": (
            "During World War II, Orange became a major shipbuilding center. The "
            "deep water port and availability of timber made it ideal for the "
            "industry. Orange shipyards produced hundreds of vessels for the war "
            "effort."
        ),
        "event_date": "1941", "event_year": 1941,
        "city": "Orange", "topic": "Shipbuilding",
        "source_name": "Heritage House of Orange County", "importance": 9,
    },
    {
        "title": "Arthur Stilwell Founds Port Arthur",
        "content": (
            "Railroad promoter Arthur Stilwell founded Port Arthur in 1895 as the "
            "southern terminus of the Kansas City, Pittsburg and Gulf Railroad, "
            "dredging a ship channel to the Gulf of Mexico."
        ),
        "event_date": "1895", "event_year": 1895,
        "city": "Port Arthur", "topic": "Oil & Energy",
        "source_name": "Texas State Historical Association", "importance": 7,
    },
    {
        "title": "Orange Named for Wild Orange Groves",
        "content": (
            "The city took its name in 1858 from the wild orange groves that grew "
            "along the banks of the Sabine River."
        ),
        "event_date": "1858", "event_year": 1858,
        "city": "Orange", "topic": None,
        "source_name": "City of Orange", "importance": 5,
    },
]
