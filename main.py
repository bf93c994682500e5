import os
from datetime import timedelta

import yaml
from loguru import logger

import daybook.settings as settings
from daybook.config import load_config
from daybook.calendar_loader import load_events
from daybook.event_processing import compute_events_hash
from daybook.layout import get_layout_config
from daybook.logger import configure_logging
from daybook.models import CalendarView
from daybook.renderers import render_view, to_dict, visible_days
from daybook.utils import parse_date_range, start_of_day, week_start_of


def main():
    # 0) Set up logs
    configure_logging()
    tz_local = settings.TZ_LOCAL
    logger.debug("Timezone: {}", settings.TIMEZONE)

    # 1) Work out which reference dates to render
    view = CalendarView(settings.DEFAULT_VIEW)
    date_list = parse_date_range(settings.DATE_RANGE, tz_local)
    if view is CalendarView.AGENDA:
        candidates = date_list[:1]
    elif view is CalendarView.WEEK:
        candidates = [week_start_of(d) for d in date_list]
    elif view is CalendarView.MONTH:
        candidates = [d.replace(day=1) for d in date_list]
    else:
        candidates = date_list
    references = list(dict.fromkeys(candidates))

    # 2) Load events covering every visible day
    days = [day for ref in references for day in visible_days(view, ref)]
    window_start = start_of_day(min(days), tz_local)
    window_end = start_of_day(max(days) + timedelta(days=1), tz_local)
    config = load_config()
    events = load_events(config.get("calendars", []), window_start, window_end, tz_local)
    logger.info("Loaded {} events ({})", len(events), compute_events_hash(events)[:12])

    # 3) Build render models
    layout = get_layout_config()
    models = []
    for ref in references:
        logger.info("Rendering {} view for {}", view.value, ref)
        model = render_view(view, events, ref, layout=layout, tz_local=tz_local)
        models.append({"reference": ref.isoformat(), "model": to_dict(model)})

    # 4) Write YAML
    out_path = settings.OUTPUT_PATH
    os.makedirs(os.path.dirname(out_path) or ".", exist_ok=True)
    with open(out_path, "w", encoding="utf-8") as f:
        yaml.safe_dump({"view": view.value, "layout": layout, "pages": models}, f, sort_keys=False)
    logger.info("✅ Wrote {} {} model(s) to {}", len(models), view.value, out_path)


if __name__ == '__main__':
    main()
