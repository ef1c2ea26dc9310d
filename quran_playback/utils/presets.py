# quran_playback/utils/presets.py
"""
Built-in presets for well-known CDN reciters.
"""
from dataclasses import dataclass
from typing import Dict, Optional

from ..models import CDNSource, NamingPattern, ReciterSnapshot, Riwayah


@dataclass(frozen=True)
class ReciterPreset:
    id: str
    name: str
    short_name: str
    riwayah: Riwayah
    style: str
    base_url: Optional[str] = None
    url_template: Optional[str] = None
    naming_pattern: NamingPattern = NamingPattern.SURAH_AYAH
    audio_format: str = "mp3"

    def to_reciter(self) -> ReciterSnapshot:
        source = CDNSource(
            riwayah=self.riwayah,
            base_url=self.base_url,
            url_template=self.url_template,
            audio_format=self.audio_format,
            naming_pattern=self.naming_pattern,
            sort_order=0
        )
        return ReciterSnapshot(
            reciter_id=self.id,
            name=self.name,
            style=self.style,
            cdn_sources=(source,)
        )


PRESETS = [
    ReciterPreset(
        id="minshawy-hafs-murattal",
        name="Muhammad Siddiq Al-Minshawi",
        short_name="Minshawi",
        riwayah=Riwayah.HAFS,
        style="murattal",
        base_url="https://everyayah.com/data/Minshawy_Murattal_128kbps/"
    ),
    ReciterPreset(
        id="husary-hafs-murattal",
        name="Mahmoud Khalil Al-Husary",
        short_name="Husary",
        riwayah=Riwayah.HAFS,
        style="murattal",
        url_template="https://audio-cdn.tarteel.ai/quran/husary/${sss}${aaa}.mp3"
    ),
    ReciterPreset(
        id="dosari-hafs-murattal",
        name="Yasser Ibn Rashid Al-Dosari",
        short_name="Al-Dosari",
        riwayah=Riwayah.HAFS,
        style="murattal",
        url_template="https://audio-cdn.tarteel.ai/quran/yasserAlDosari/${sss}${aaa}.mp3"
    ),
    ReciterPreset(
        id="alafasy-hafs-murattal",
        name="Mishary Rashid Alafasy",
        short_name="Alafasy",
        riwayah=Riwayah.HAFS,
        style="murattal",
        url_template="https://audio-cdn.tarteel.ai/quran/alafasy/${sss}${aaa}.mp3"
    ),
    ReciterPreset(
        id="hudhaify-hafs-murattal",
        name="Ali Ibn Abd-ur-Rahman Al-Hudhaify",
        short_name="Hudhaify",
        riwayah=Riwayah.HAFS,
        style="murattal",
        base_url="https://everyayah.com/data/Hudhaify_128kbps/"
    ),
    ReciterPreset(
        id="ibrahim-dosary-warsh-murattal",
        name="Ibrahim Al-Dosary",
        short_name="Al-Dosary (Warsh)",
        riwayah=Riwayah.WARSH,
        style="murattal",
        base_url="https://everyayah.com/data/warsh/warsh_ibrahim_aldosary_128kbps/"
    ),
]

PRESETS_BY_ID: Dict[str, ReciterPreset] = {p.id: p for p in PRESETS}
