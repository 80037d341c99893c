"""Calendar heatmap projection of daily volumes and their spikes."""

from datetime import datetime
from typing import Sequence

from .models import DailyVolumePoint, HeatmapCell, VolumeHeatmap, VolumeSpike


def build_volume_heatmap(points: Sequence[DailyVolumePoint],
                         spikes: Sequence[VolumeSpike]) -> VolumeHeatmap:
    """Project daily volumes onto calendar cells grouped by ISO week.

    A day's intensity is the heatmap level of the spike recorded on the same
    date, or 0 when the day is not a spike. ``day_of_week`` counts from
    Sunday (0) to Saturday (6); ``week_of_year`` is the ISO week number.
    """
    spikes_by_date = {}
    for spike in spikes:
        spikes_by_date.setdefault(spike.date, spike)

    heatmap = VolumeHeatmap()
    for point in points:
        spike = spikes_by_date.get(point.date)
        day = datetime.fromisoformat(point.date)

        cell = HeatmapCell(
            date=point.date,
            formatted_date=point.formatted_date,
            volume=point.volume,
            intensity=spike.spike_intensity.heatmap_level if spike else 0,
            is_spike=spike is not None,
            day_of_week=(day.weekday() + 1) % 7,
            week_of_year=day.isocalendar()[1],
        )
        heatmap.cells.append(cell)
        heatmap.weeks.setdefault(cell.week_key, []).append(cell)

    return heatmap
