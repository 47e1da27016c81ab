"""
csvimporter.progress - tqdm progress bars for imports.
"""

from tqdm import tqdm
import humanize


class RecordProgressTqdm(tqdm):
    """Progress bar counting imported records; the total is usually unknown."""

    @staticmethod
    def format_meter(n, total, elapsed, rate_fmt=None, postfix=None, ncols=None, **extra_kwargs):
        prefix = extra_kwargs.get("prefix") or "Importing records"
        if total:
            percentage = n / total * 100
            return f"{prefix}: {humanize.intcomma(n)}/{humanize.intcomma(total)} records " \
                   f"({percentage:.1f}%) [{tqdm.format_interval(elapsed)}]"
        return f"{prefix}: {humanize.intcomma(n)} records [{tqdm.format_interval(elapsed)}]"


def tqdm_progress(pbar):
    """Return an on_progress callback that moves pbar to the reported record count."""
    def on_progress(imported_count):
        pbar.update(imported_count - pbar.n)
    return on_progress
