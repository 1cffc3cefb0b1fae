from typing import Optional

from schedule_scrapers.data_quality.scoring import FREE_TEXT_CONFIDENCE, IMAGE_CONFIDENCE, STRUCTURED_FIELD_CONFIDENCE

RESPONSE_SHAPE = """{
  "host_name": "KJ / DJ / host company running the shows, or null",
  "shows": [
    {
      "venue": "venue name",
      "address": "street address or null",
      "city": "city or null",
      "state": "two-letter state or null",
      "zip": "zip code or null",
      "day": "monday",
      "start_time": "21:00",
      "end_time": "02:00",
      "host_name": "host for this show if different, or null",
      "confidence": 0.7
    }
  ]
}"""

RULES = f"""Rules:
- Return exactly ONE JSON object with the shape below and nothing else. No prose, no markdown.
- One entry in "shows" per venue per weekday. "TH+SAT at Crescent Lounge" is two entries.
- "day" is a single lower-case English weekday word: monday, tuesday, wednesday, thursday, friday, saturday or sunday.
- Times are 24-hour HH:MM. Convert 12-hour times: 9pm -> 21:00, 9:30pm -> 21:30, 12am -> 00:00, 2am -> 02:00.
- If a time has no am/pm marker, copy the hour as written (8 -> 08:00). Do not guess the meridiem.
- Leave a field null when the content does not state it. Never invent venues, addresses or times.
- "confidence": {STRUCTURED_FIELD_CONFIDENCE} when the schedule comes from an explicit schedule field or listing,
  {IMAGE_CONFIDENCE} when read from a flyer or photo, {FREE_TEXT_CONFIDENCE} when inferred from a free-text post.
- If there is no karaoke schedule in the content, return {{"host_name": null, "shows": []}}.

Response shape:
{RESPONSE_SHAPE}
"""


def build_text_prompt(content: str, source_url: str, origin_hint: str, host_hint: Optional[str] = None) -> str:
    host_line = f"The page belongs to: {host_hint}\n" if host_hint else ""
    return (
        "You extract recurring karaoke show schedules from social media content.\n"
        f"Source: {source_url}\n"
        f"Content type: {origin_hint}\n"
        f"{host_line}\n"
        f"{RULES}\n"
        "Content:\n"
        "<<<\n"
        f"{content}\n"
        ">>>\n"
    )


def build_image_prompt(source_url: str, host_hint: Optional[str] = None) -> str:
    host_line = f"The image was posted by: {host_hint}\n" if host_hint else ""
    return (
        "The attached image is a karaoke flyer, schedule graphic or event photo from social media.\n"
        "Read every venue, weekday and time window shown in it.\n"
        f"Source: {source_url}\n"
        f"{host_line}\n"
        f"{RULES}"
    )


def build_location_prompt(venues_block: str) -> str:
    return (
        "For each numbered karaoke venue below, fill in its location in the United States.\n"
        "Return exactly ONE JSON object: "
        '{"locations": [{"index": 0, "city": "...", "state": "OH", "zip": "43215", "lat": 39.96, "lng": -83.0}]}\n'
        "Use null for anything you are not sure about. Do not invent venues.\n\n"
        f"{venues_block}\n"
    )
