# Global UI Strings and Constants
APP_VERSION = "v1.0.0"

HELP_TEXT = (
    "<b>Grind Review Bot</b>\n\n"
    "Track the problems you solve and get a daily nudge to review the old ones.\n\n"
    "/add name=Two Sum; difficulty=Easy; category=Arrays; status=Solved; "
    "solved_at=2024-01-05; tags=hash, array; link=https://...; notes=...\n"
    "/get &lt;id&gt; - show one problem\n"
    "/edit &lt;id&gt; name=...; status=... - change fields (tags= replaces all tags)\n"
    "/delete &lt;id&gt; - remove a problem\n"
    "/list status=Stuck; difficulty=Hard; category=...; tags=dp, graph\n"
    "/review - what is due for review right now\n"
    "/stats - your totals\n"
    "/tags - tags you have used\n\n"
    "Difficulty: Easy, Medium, Hard. Status: Solved, Needed Hint, Stuck.\n"
    "Put values that contain ; in double quotes: notes=\"BFS; then DP\""
)

REMINDER_HEADER = "Hey {mention}! Here are some problems you might want to review today:"
REMINDER_MORE = "...and {count} more waiting for the next reminder."
REMINDER_FOOTER = "Remember, consistent review helps reinforce your understanding!"

NO_PROBLEMS_TEXT = "You haven't added any problems yet, or no problems match your filter."
NO_STATS_TEXT = "No statistics found for you yet. Start adding problems!"
NOTHING_DUE_TEXT = "Nothing is due for review right now. 🎉"
GENERIC_ERROR_TEXT = "⚠️ An unexpected error occurred while processing your command."
ADMIN_ONLY_TEXT = "⛔ This command is for the admin only."
