"""256-color ANSI escapes used by the colored log format."""

RESET = "\033[0m"

GREEN = "\033[38;5;82m"
RED = "\033[38;5;196m"
YELLOW = "\033[38;5;226m"
ORANGE = "\033[38;5;208m"
LIGHT_BLUE = "\033[38;5;153m"
CYAN = "\033[38;5;51m"
MAGENTA = "\033[38;5;201m"
VIOLET = "\033[38;5;141m"

# Tag color for each logging component
COMPONENT_COLORS = {
    "run": MAGENTA,
    "node": CYAN,
    "hub": VIOLET,
    "queue": VIOLET,
    "trigger": VIOLET,
    "registry": GREEN,
}
