from daybook.logger import register_levels

register_levels()
