"""
Station definitions and pipeline topology.

Workshops (12-14) are spliced into the pipeline right after the post-MVP
mentorship (7) and before launch prep (8). They are also rendered as
standalone entries, but each is a single station for status purposes.
"""
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple


class UnknownStationError(LookupError):
    """Caller passed a station id that is not part of the pipeline."""

    def __init__(self, station_id):
        super().__init__(f"Unknown station id: {station_id!r}")
        self.station_id = station_id


@dataclass(frozen=True)
class Station:
    id: int
    section_key: str
    title: str
    description: str
    estimated_time: str
    output: str


STATIONS: List[Station] = [
    Station(1, "idea", "AI Powered Idea Creation",
            "Generate and refine your startup idea with AI assistance and market research",
            "30 mins", "Refined Idea Card"),
    Station(2, "mockups", "Visual Mockup Station",
            "Create visual mockups and wireframes for your product concept",
            "45 mins", "Product Mockups"),
    Station(3, "validation", "Validation Engine",
            "Market validation through surveys, interviews, and data analysis",
            "2 hours", "Validation Report"),
    Station(4, "pitch_deck", "Pitch Deck Creation",
            "Create investor presentations with financial projections and market analysis",
            "2 days", "Pitch Deck"),
    Station(5, "mentorship_pre", "Pre-MVP Mentorship Session",
            "Strategic guidance and planning before building your MVP",
            "60 mins", "Mentorship Insights"),
    Station(6, "mvp", "MVP Development Station",
            "Plan and build your Minimum Viable Product with a development roadmap",
            "2-8 weeks", "MVP Plan & Build"),
    Station(7, "mentorship_post", "Post-MVP Mentorship Session",
            "Review MVP results and plan next steps with experienced mentors",
            "90 mins", "Strategic Guidance"),
    Station(8, "launch_prep", "Launch Prep Station",
            "Prepare for product launch with go-to-market strategy and launch planning",
            "1 week", "Launch Plan"),
    Station(9, "launch_execution", "Launch Execution Station",
            "Execute your product launch with coordinated marketing and communication",
            "1 week", "Executed Launch"),
    Station(10, "mentorship_pre_investor", "Pre-Investor Mentorship Session",
            "Final coaching and review before investor presentations",
            "60 mins", "Mentorship Insights"),
    Station(11, "pitch_practice", "Pitch Practice Station",
            "Practice investor pitches and refine messaging with AI feedback",
            "45 mins", "Pitch Video & Feedback"),
    Station(12, "finance", "Workshop: Financial Modeling",
            "Hands-on session to build your initial financial model",
            "90 mins", "Financial Model"),
    Station(13, "marketing", "Workshop: Marketing Strategy",
            "Branding, acquisition channels, and campaign planning",
            "60 mins", "Marketing Plan"),
    Station(14, "legal", "Workshop: Legal & Compliance",
            "Ensure your startup is compliant with key legal requirements",
            "60 mins", "Compliance Checklist"),
    Station(15, "investor_presentation", "Investor Presentation",
            "Present your startup to investors with polished materials",
            "2 hours", "Investor Presentation"),
]

WORKSHOP_IDS: Tuple[int, ...] = (12, 13, 14)

# Canonical traversal order; workshops sit between 7 and 8.
PIPELINE_ORDER: Tuple[int, ...] = (1, 2, 3, 4, 5, 6, 7, 12, 13, 14, 8, 9, 10, 11, 15)

STATION_BY_ID: Dict[int, Station] = {s.id: s for s in STATIONS}
SECTION_KEY_TO_STATION: Dict[str, int] = {s.section_key: s.id for s in STATIONS}
STATION_POSITION: Dict[int, int] = {sid: i for i, sid in enumerate(PIPELINE_ORDER)}


def get_station(station_id: int) -> Station:
    try:
        return STATION_BY_ID[station_id]
    except (KeyError, TypeError):
        raise UnknownStationError(station_id) from None


def position_of(station_id: int) -> int:
    """Zero-based index of the station in PIPELINE_ORDER."""
    get_station(station_id)
    return STATION_POSITION[station_id]


def section_key_of(station_id: int) -> str:
    """Key used to address the administrator lock/unlock maps."""
    return get_station(station_id).section_key


def neighbors(station_id: int) -> Tuple[Optional[int], Optional[int]]:
    """(previous, next) station ids following PIPELINE_ORDER; None at either end."""
    pos = position_of(station_id)
    prev_id = PIPELINE_ORDER[pos - 1] if pos > 0 else None
    next_id = PIPELINE_ORDER[pos + 1] if pos < len(PIPELINE_ORDER) - 1 else None
    return prev_id, next_id


def is_workshop(station_id: int) -> bool:
    get_station(station_id)
    return station_id in WORKSHOP_IDS


def first_incomplete(completed: Iterable[int]) -> Optional[int]:
    """First station in pipeline order that is not completed; None when all are done."""
    done = set(completed)
    for sid in PIPELINE_ORDER:
        if sid not in done:
            return sid
    return None


def node_id(station_id: int, standalone: bool = False) -> str:
    """Rendered node id. Workshops appear twice: `work-<id>` standalone, `pipe-<id>` inline."""
    if is_workshop(station_id):
        return f"{'work' if standalone else 'pipe'}-{station_id}"
    return str(station_id)


def pipeline_nodes() -> List[Dict[str, object]]:
    """Standalone workshop row first, then the pipeline grid in order."""
    nodes: List[Dict[str, object]] = []
    for wid in WORKSHOP_IDS:
        nodes.append({"id": node_id(wid, standalone=True), "station_id": wid, "standalone": True})
    last = len(PIPELINE_ORDER) - 1
    for i, sid in enumerate(PIPELINE_ORDER):
        nodes.append({
            "id": node_id(sid),
            "station_id": sid,
            "standalone": False,
            "is_first": i == 0,
            "is_last": i == last,
        })
    return nodes


def pipeline_edges() -> List[Tuple[str, str, int]]:
    """(source node, target node, source station id) for consecutive pipeline stations."""
    return [
        (node_id(curr), node_id(nxt), curr)
        for curr, nxt in zip(PIPELINE_ORDER, PIPELINE_ORDER[1:])
    ]
