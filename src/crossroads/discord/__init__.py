"""Discord integration for Crossroads.

The membership client runs in-process with FastAPI, sharing the same event
loop. It answers which guild roles a member holds, which the tier gate
maps to eligibility tiers.

Optional: without DISCORD_BOT_TOKEN and DISCORD_GUILD_ID the app uses a
static, empty membership oracle instead.
"""
