# cogs/timeclock.py
import datetime as dt
import io
from typing import List, Optional

import discord
from discord import app_commands
from discord.ext import commands

from config import BUTTON_COOLDOWN_SECONDS
from timeclock.cooldown import Cooldown
from timeclock.duration import calculate_duration
from timeclock.errors import (
    AlreadyActive,
    Banned,
    Frozen,
    GuildNotConfigured,
    InvalidAdjustment,
    InvalidState,
    NotActive,
    PenaltyActive,
    PermissionDenied,
    SessionNotFound,
    StorageError,
    TimeClockError,
)
from timeclock.logger import log
from timeclock.models import Actor, AutoCut, GuildConfig, Mode, WorkSession
from timeclock.reporting import history_report, payroll_listing, payroll_reset, render_history, total_for
from timeclock.session_manager import SessionManager, is_admin
from timeclock.state_store import StateStore
from timeclock.time_utils import format_duration, now_utc

TIMEZONES = [
    app_commands.Choice(name="México (Centro)", value="America/Mexico_City"),
    app_commands.Choice(name="Colombia/Perú", value="America/Bogota"),
    app_commands.Choice(name="Argentina/Chile", value="America/Argentina/Buenos_Aires"),
    app_commands.Choice(name="Venezuela", value="America/Caracas"),
    app_commands.Choice(name="España", value="Europe/Madrid"),
    app_commands.Choice(name="USA (New York)", value="America/New_York"),
    app_commands.Choice(name="UTC", value="UTC"),
]

MODES = [
    app_commands.Choice(name="Self-service", value=Mode.SELF_SERVICE.value),
    app_commands.Choice(name="Supervisor-assigned", value=Mode.SUPERVISOR.value),
    app_commands.Choice(name="Hybrid", value=Mode.HYBRID.value),
]

COLOR_ACTIVE = 0x5865F2
COLOR_FROZEN = 0x99AAB5
COLOR_START = 0x57F287
COLOR_STOP = 0xED4245
COLOR_WARN = 0xFFA500


def actor_of(interaction: discord.Interaction) -> Actor:
    user = interaction.user
    roles = getattr(user, "roles", [])
    return Actor(
        user_id=user.id,
        role_ids=frozenset(r.id for r in roles),
        is_owner=interaction.guild is not None and interaction.guild.owner_id == user.id,
    )


def error_message(error: TimeClockError) -> str:
    if isinstance(error, AlreadyActive):
        return "❌ There is already an open session."
    if isinstance(error, NotActive):
        return "❓ No open session."
    if isinstance(error, InvalidState):
        return f"⚠️ {error.message}."
    if isinstance(error, Frozen):
        return "❄️ The time clock is closed."
    if isinstance(error, Banned):
        return "⛔ This member is banned from the time clock."
    if isinstance(error, PenaltyActive):
        return f"⏳ Penalty active until <t:{int(error.until.timestamp())}:f>."
    if isinstance(error, PermissionDenied):
        return f"⛔ {error.message}."
    if isinstance(error, SessionNotFound):
        return "❓ No closed session found."
    if isinstance(error, InvalidAdjustment):
        return f"⚠️ {error.message}."
    if isinstance(error, GuildNotConfigured):
        return "⚠️ The bot is not configured on this server. The owner must run `/setup`."
    if isinstance(error, StorageError):
        return "⚠️ Could not save the change, try again later."
    return f"⚠️ {error.message}"


def build_dashboard_embed(config: GuildConfig, sessions: List[WorkSession], now: dt.datetime) -> discord.Embed:
    lines = []
    for s in sessions:
        marker = " ⏸️" if s.is_paused else ""
        lines.append(f"• <@{s.user_id}> {format_duration(calculate_duration(s, now))}"
                     f" (<t:{int(s.start_time.timestamp())}:R>){marker}")
    status = "❄️ Closed" if config.is_frozen else "🟢 Active"
    embed = discord.Embed(
        title="⏱️ Time Clock",
        description=f"**Status:** {status}",
        color=COLOR_FROZEN if config.is_frozen else COLOR_ACTIVE,
    )
    embed.add_field(name="Working now", value="\n".join(lines) if lines else "*Nobody*", inline=False)
    embed.set_footer(text=f"Timezone: {config.timezone}")
    return embed


GUIDE_STEPS = [
    ("Step 1: Channels", "Create a public channel for the dashboard and a private one for logs."),
    ("Step 2: Setup", "The server owner runs `/setup` with both channels, the timezone, the mode "
                      "and the admin role. Setup runs once; use `/reset` to start over."),
    ("Step 3: Work", "Members press **START** / **STOP** on the dashboard."),
]

ADMIN_COMMANDS = (
    "`/clockin`, `/pause`, `/resume`, `/forceclose`, `/cancel`, `/transfer`, `/adjust`, "
    "`/time`, `/payroll`, `/paid`, `/history`, `/cut`, `/freeze`, `/unfreeze`, "
    "`/ban`, `/unban`, `/penalty`, `/permit`"
)


def build_guide_embed() -> discord.Embed:
    embed = discord.Embed(
        title="📘 Time Clock guide",
        description="How to set up and use the time clock.",
        color=0xFEE75C,
    )
    for name, value in GUIDE_STEPS:
        embed.add_field(name=name, value=value, inline=False)
    embed.add_field(name="Admin commands", value=ADMIN_COMMANDS, inline=False)
    embed.set_footer(text="Only the server owner can run /setup")
    return embed


class DashboardView(discord.ui.View):
    def __init__(self, cog: "TimeClockCog"):
        super().__init__(timeout=None)  # persistent across restarts
        self.cog = cog

    @discord.ui.button(label="START", style=discord.ButtonStyle.success, emoji="🟢", custom_id="timeclock:start")
    async def start_button(self, interaction: discord.Interaction, button: discord.ui.Button):
        await self.cog.handle_start(interaction)

    @discord.ui.button(label="STOP", style=discord.ButtonStyle.danger, emoji="🔴", custom_id="timeclock:stop")
    async def stop_button(self, interaction: discord.Interaction, button: discord.ui.Button):
        await self.cog.handle_stop(interaction)


class TimeClockCog(commands.Cog):
    def __init__(self, bot: commands.Bot):
        self.bot = bot
        self.store: StateStore = bot.store
        self.manager: SessionManager = bot.manager
        self.cooldown = Cooldown(BUTTON_COOLDOWN_SECONDS)

    async def cog_load(self) -> None:
        self.bot.add_view(DashboardView(self))

    async def cog_app_command_error(self, interaction: discord.Interaction,
                                    error: app_commands.AppCommandError) -> None:
        original = getattr(error, "original", error)
        if isinstance(original, TimeClockError):
            await self._reply(interaction, error_message(original))
            return
        log.exception(f"[TIMECLOCK] command failed: {error}", exc_info=original)
        await self._reply(interaction, "⚠️ Unexpected error.")

    # ----- helpers -----

    @staticmethod
    async def _reply(interaction: discord.Interaction, content: str = None, **kwargs):
        if interaction.response.is_done():
            await interaction.followup.send(content, ephemeral=True, **kwargs)
        else:
            await interaction.response.send_message(content, ephemeral=True, **kwargs)

    def _require_config(self, guild_id: int) -> GuildConfig:
        config = self.store.get_guild(guild_id)
        if config is None:
            raise GuildNotConfigured("Not configured", {"guild_id": guild_id})
        return config

    def _require_admin(self, interaction: discord.Interaction) -> GuildConfig:
        config = self._require_config(interaction.guild_id)
        if not is_admin(config, actor_of(interaction)):
            raise PermissionDenied("Only admins can do this")
        return config

    async def _fetch_channel(self, channel_id: Optional[int]):
        if not channel_id:
            return None
        channel = self.bot.get_channel(channel_id)
        if channel is None:
            try:
                channel = await self.bot.fetch_channel(channel_id)
            except discord.HTTPException:
                return None
        return channel

    async def send_log(self, guild_id: int, content: str = None,
                       embed: discord.Embed = None) -> Optional[discord.Message]:
        config = self.store.get_guild(guild_id)
        channel = await self._fetch_channel(config.log_channel_id if config else None)
        if channel is None:
            return None
        try:
            return await channel.send(content, embed=embed)
        except discord.HTTPException as e:
            log.warning(f"[TIMECLOCK] log message failed guild={guild_id}: {e}")
            return None

    async def delete_start_notice(self, session: WorkSession):
        if not session.start_message_id:
            return
        config = self.store.get_guild(session.guild_id)
        channel = await self._fetch_channel(config.log_channel_id if config else None)
        if channel is None:
            return
        try:
            await channel.get_partial_message(session.start_message_id).delete()
        except discord.HTTPException as e:
            log.info(f"[TIMECLOCK] start notice not deleted session={session.id}: {e}")

    async def _announce_start(self, session: WorkSession, text: str):
        message = await self.send_log(session.guild_id, embed=discord.Embed(description=text, color=COLOR_START))
        if message is None:
            return
        session.start_message_id = message.id
        try:
            self.store.update(session)
        except StorageError as e:
            log.warning(f"[TIMECLOCK] start notice id not saved session={session.id}: {e}")

    async def refresh_dashboard(self, guild_id: int):
        config = self.store.get_guild(guild_id)
        if config is None:
            return
        channel = await self._fetch_channel(config.dash_channel_id)
        if channel is None:
            return
        embed = build_dashboard_embed(config, self.store.find_open_by_guild(guild_id), now_utc())
        try:
            if config.dash_message_id:
                message = await channel.fetch_message(config.dash_message_id)
                await message.edit(embed=embed, view=DashboardView(self))
                return
        except discord.NotFound:
            log.info(f"[TIMECLOCK] dashboard message gone, sending a new one guild={guild_id}")
        except discord.HTTPException as e:
            log.warning(f"[TIMECLOCK] dashboard update failed guild={guild_id}: {e}")
            return
        message = await channel.send(embed=embed, view=DashboardView(self))
        config.dash_message_id = message.id
        self.store.save_guild(config)

    # ----- buttons -----

    async def handle_start(self, interaction: discord.Interaction):
        if self.cooldown.hit(interaction.user.id):
            await self._reply(interaction, "⏳ Wait a moment...")
            return
        try:
            session = self.manager.start(interaction.guild_id, interaction.user.id, actor_of(interaction))
        except TimeClockError as e:
            await self._reply(interaction, error_message(e))
            return
        await self._reply(interaction, "✅ Shift started.")
        await self._announce_start(session, f"🟢 <@{interaction.user.id}> started a shift.")
        await self.refresh_dashboard(interaction.guild_id)

    async def handle_stop(self, interaction: discord.Interaction):
        if self.cooldown.hit(interaction.user.id):
            await self._reply(interaction, "⏳ Wait a moment...")
            return
        try:
            session, duration = self.manager.stop(interaction.guild_id, interaction.user.id)
        except TimeClockError as e:
            await self._reply(interaction, error_message(e))
            return
        await self._reply(interaction, f"👋 Shift closed: **{format_duration(duration)}**")
        await self._log_closed(session, duration, "📕 Shift closed")
        await self.refresh_dashboard(interaction.guild_id)

    async def _log_closed(self, session: WorkSession, duration: int, title: str):
        await self.delete_start_notice(session)
        grand_total = total_for(self.store, session.guild_id, session.user_id)
        embed = discord.Embed(title=title, color=COLOR_STOP, timestamp=now_utc())
        embed.add_field(name="User", value=f"<@{session.user_id}>", inline=True)
        embed.add_field(name="This session", value=f"**{format_duration(duration)}**", inline=True)
        embed.add_field(name="Total", value=f"**{format_duration(grand_total)}**", inline=True)
        await self.send_log(session.guild_id, embed=embed)

    # ----- setup -----

    @app_commands.command(name="setup", description="Configure the time clock (server owner only).")
    @app_commands.guild_only()
    @app_commands.describe(
        channel="Public channel for the dashboard",
        log_channel="Private channel for logs",
        timezone="Server timezone",
        mode="Who can start sessions",
        admin_role="Role with admin rights",
        auto_cut="Weekly auto cut-off, e.g. 'monday 23:59' (optional)",
    )
    @app_commands.choices(timezone=TIMEZONES, mode=MODES)
    async def setup_command(self, interaction: discord.Interaction, channel: discord.TextChannel,
                            log_channel: discord.TextChannel, timezone: app_commands.Choice[str],
                            mode: app_commands.Choice[str], admin_role: discord.Role,
                            auto_cut: Optional[str] = None):
        if interaction.user.id != interaction.guild.owner_id:
            raise PermissionDenied("Only the server owner can run setup")
        if self.store.get_guild(interaction.guild_id) is not None:
            await self._reply(interaction, "⚠️ This server is already configured. Run `/reset` first.")
            return
        cut = AutoCut.parse(auto_cut) if auto_cut else None
        if auto_cut and cut is None:
            await self._reply(interaction, "⚠️ Auto cut-off must look like `monday 23:59`.")
            return

        config = GuildConfig(
            guild_id=interaction.guild_id,
            timezone=timezone.value,
            mode=Mode(mode.value),
            admin_roles=[admin_role.id],
            auto_cut=cut,
            is_frozen=False,
            owner_id=interaction.guild.owner_id,
            dash_channel_id=channel.id,
            log_channel_id=log_channel.id,
        )
        self.store.save_guild(config)
        log.info(f"[TIMECLOCK] guild={interaction.guild_id} configured mode={config.mode.value}")
        await self._reply(interaction, f"✅ Setup saved. Dashboard sent to {channel.mention}.")
        await self.refresh_dashboard(interaction.guild_id)

    @app_commands.command(name="reset", description="Remove this server's configuration (server owner only).")
    @app_commands.guild_only()
    async def reset_command(self, interaction: discord.Interaction):
        if interaction.user.id != interaction.guild.owner_id:
            raise PermissionDenied("Only the server owner can reset the configuration")
        config = self._require_config(interaction.guild_id)
        channel = await self._fetch_channel(config.dash_channel_id)
        if channel is not None and config.dash_message_id:
            try:
                await channel.get_partial_message(config.dash_message_id).delete()
            except discord.HTTPException as e:
                log.info(f"[TIMECLOCK] old dashboard not deleted guild={interaction.guild_id}: {e}")
        self.store.delete_guild(interaction.guild_id)
        log.info(f"[TIMECLOCK] guild={interaction.guild_id} configuration reset")
        await self._reply(interaction, "🗑️ Configuration removed. Sessions are kept; run `/setup` again.")

    @app_commands.command(name="guide", description="How to set up and use the time clock.")
    async def guide_command(self, interaction: discord.Interaction):
        await self._reply(interaction, embed=build_guide_embed())

    @app_commands.command(name="permit", description="Allow a role to start time for another role.")
    @app_commands.guild_only()
    async def permit_command(self, interaction: discord.Interaction, starter_role: discord.Role,
                             target_role: discord.Role):
        config = self._require_admin(interaction)
        rule = (starter_role.id, target_role.id)
        if rule not in config.role_permissions:
            config.role_permissions.append(rule)
            self.store.save_guild(config)
        await self._reply(interaction, f"✅ {starter_role.mention} can start time for {target_role.mention}.")

    # ----- session management -----

    @app_commands.command(name="clockin", description="Start a session for a member.")
    @app_commands.guild_only()
    async def clockin_command(self, interaction: discord.Interaction, member: discord.Member):
        session = self.manager.start(interaction.guild_id, member.id, actor_of(interaction),
                                     target_role_ids=[r.id for r in member.roles])
        await self._reply(interaction, f"✅ Session started for {member.mention}.")
        await self._announce_start(session, f"🟢 <@{member.id}> started by <@{interaction.user.id}>.")
        await self.refresh_dashboard(interaction.guild_id)

    @app_commands.command(name="pause", description="Pause a member's session.")
    @app_commands.guild_only()
    async def pause_command(self, interaction: discord.Interaction, member: discord.Member):
        self.manager.pause(interaction.guild_id, member.id, actor_of(interaction))
        await self._reply(interaction, f"⏸️ Paused {member.mention}.")
        await self.refresh_dashboard(interaction.guild_id)

    @app_commands.command(name="resume", description="Resume a member's paused session.")
    @app_commands.guild_only()
    async def resume_command(self, interaction: discord.Interaction, member: discord.Member):
        self.manager.resume(interaction.guild_id, member.id, actor_of(interaction))
        await self._reply(interaction, f"▶️ Resumed {member.mention}.")
        await self.refresh_dashboard(interaction.guild_id)

    @app_commands.command(name="forceclose", description="Close a member's open session.")
    @app_commands.guild_only()
    async def forceclose_command(self, interaction: discord.Interaction, member: discord.Member):
        session, duration = self.manager.force_close(interaction.guild_id, member.id, actor_of(interaction))
        await self._reply(interaction, f"🔒 Closed {member.mention}: **{format_duration(duration)}**")
        await self._log_closed(session, duration, "🔒 Shift force-closed")
        await self.refresh_dashboard(interaction.guild_id)

    @app_commands.command(name="cancel", description="Delete a member's open session without recording it.")
    @app_commands.guild_only()
    async def cancel_command(self, interaction: discord.Interaction, member: discord.Member):
        session = self.manager.cancel(interaction.guild_id, member.id, actor_of(interaction))
        await self._reply(interaction, f"🗑️ Session of {member.mention} cancelled.")
        await self.delete_start_notice(session)
        await self.send_log(interaction.guild_id, embed=discord.Embed(
            description=f"🗑️ Session of <@{member.id}> cancelled by <@{interaction.user.id}>.",
            color=COLOR_WARN))
        await self.refresh_dashboard(interaction.guild_id)

    @app_commands.command(name="transfer", description="Split a member's session to a new supervisor.")
    @app_commands.guild_only()
    async def transfer_command(self, interaction: discord.Interaction, member: discord.Member,
                               supervisor: discord.Member):
        old, new = self.manager.transfer(interaction.guild_id, member.id, supervisor.id, actor_of(interaction))
        duration = calculate_duration(old)
        await self._reply(interaction, f"🔀 {member.mention} now works for {supervisor.mention}.")
        await self._log_closed(old, duration, "🔀 Session transferred")
        await self._announce_start(new, f"🟢 <@{member.id}> continues under <@{supervisor.id}>.")
        await self.refresh_dashboard(interaction.guild_id)

    @app_commands.command(name="adjust", description="Add or remove minutes on the latest closed session.")
    @app_commands.guild_only()
    @app_commands.choices(sign=[app_commands.Choice(name="Add", value="+"),
                                app_commands.Choice(name="Remove", value="-")])
    async def adjust_command(self, interaction: discord.Interaction, member: discord.Member,
                             sign: app_commands.Choice[str], minutes: str):
        session = self.manager.adjust_history(interaction.guild_id, member.id, minutes, sign.value,
                                              actor_of(interaction))
        await self._reply(interaction, f"✏️ Adjusted {member.mention} by {sign.value}{minutes.strip()}m "
                                       f"(session now {format_duration(calculate_duration(session))}).")

    # ----- reports -----

    @app_commands.command(name="time", description="Show a member's accumulated time.")
    @app_commands.guild_only()
    async def time_command(self, interaction: discord.Interaction, member: discord.Member):
        self._require_admin(interaction)
        total = total_for(self.store, interaction.guild_id, member.id, include_active=True)
        closed = len(self.store.find_closed(member.id, interaction.guild_id))
        embed = discord.Embed(title=f"⏱️ Report: {member.display_name}", color=COLOR_ACTIVE)
        embed.add_field(name="Accumulated time", value=f"**{format_duration(total)}**\n*(Sessions: {closed})*")
        await self._reply(interaction, embed=embed)

    @app_commands.command(name="payroll", description="List accumulated time per member.")
    @app_commands.guild_only()
    async def payroll_command(self, interaction: discord.Interaction):
        self._require_admin(interaction)
        entries = payroll_listing(self.store, interaction.guild_id)
        if not entries:
            await self._reply(interaction, "No accumulated time yet.")
            return
        lines = [f"<@{e.user_id}>: **{format_duration(e.total_ms)}** ({e.sessions} sessions)" for e in entries]
        embed = discord.Embed(title="💰 Payroll", description="\n".join(lines), color=COLOR_ACTIVE)
        await self._reply(interaction, embed=embed)

    @app_commands.command(name="paid", description="Mark a member as paid (deletes closed sessions).")
    @app_commands.guild_only()
    async def paid_command(self, interaction: discord.Interaction, member: discord.Member):
        self._require_admin(interaction)
        deleted = payroll_reset(self.store, interaction.guild_id, member.id)
        await self._reply(interaction, f"✅ History of {member.mention} cleared ({deleted} sessions).")

    @app_commands.command(name="history", description="Download a member's session history.")
    @app_commands.guild_only()
    async def history_command(self, interaction: discord.Interaction, member: discord.Member):
        config = self._require_admin(interaction)

        def resolve_name(user_id: int) -> str:
            found = interaction.guild.get_member(user_id)
            return found.display_name if found else str(user_id)

        report = history_report(self.store, interaction.guild_id, member.id, resolve_name)
        if not report.rows:
            await self._reply(interaction, f"No closed sessions for {member.mention}.")
            return
        text = render_history(report, config.timezone)
        file = discord.File(io.BytesIO(text.encode("utf-8")), filename=f"history_{member.id}.txt")
        await self._reply(interaction, f"📄 History of {member.mention}", file=file)

    @app_commands.command(name="cut", description="Post a cut marker in the log channel.")
    @app_commands.guild_only()
    async def cut_command(self, interaction: discord.Interaction):
        self._require_admin(interaction)
        message = await self.send_log(interaction.guild_id, f"✂️ **CUT** by <@{interaction.user.id}> "
                                                            f"<t:{int(now_utc().timestamp())}:f>\n---")
        if message is None:
            await self._reply(interaction, "⚠️ Could not post to the log channel.")
            return
        await self._reply(interaction, "✂️ Cut marker posted.")

    # ----- guild / member administration -----

    @app_commands.command(name="freeze", description="Close the time clock for new sessions.")
    @app_commands.guild_only()
    async def freeze_command(self, interaction: discord.Interaction):
        self.manager.set_frozen(interaction.guild_id, True, actor_of(interaction))
        await self._reply(interaction, "❄️ Time clock closed.")
        await self.refresh_dashboard(interaction.guild_id)

    @app_commands.command(name="unfreeze", description="Reopen the time clock.")
    @app_commands.guild_only()
    async def unfreeze_command(self, interaction: discord.Interaction):
        self.manager.set_frozen(interaction.guild_id, False, actor_of(interaction))
        await self._reply(interaction, "🟢 Time clock open.")
        await self.refresh_dashboard(interaction.guild_id)

    @app_commands.command(name="ban", description="Block a member from starting sessions.")
    @app_commands.guild_only()
    async def ban_command(self, interaction: discord.Interaction, member: discord.Member):
        self.manager.set_banned(interaction.guild_id, member.id, True, actor_of(interaction))
        await self._reply(interaction, f"⛔ {member.mention} banned from the time clock.")

    @app_commands.command(name="unban", description="Allow a banned member to start sessions again.")
    @app_commands.guild_only()
    async def unban_command(self, interaction: discord.Interaction, member: discord.Member):
        self.manager.set_banned(interaction.guild_id, member.id, False, actor_of(interaction))
        await self._reply(interaction, f"✅ {member.mention} unbanned.")

    @app_commands.command(name="penalty", description="Block a member for some hours (0 clears it).")
    @app_commands.guild_only()
    async def penalty_command(self, interaction: discord.Interaction, member: discord.Member,
                              hours: app_commands.Range[int, 0, 720]):
        until = now_utc() + dt.timedelta(hours=hours) if hours else None
        self.manager.set_penalty(interaction.guild_id, member.id, until, actor_of(interaction))
        if until is None:
            await self._reply(interaction, f"✅ Penalty of {member.mention} cleared.")
        else:
            await self._reply(interaction, f"⏳ {member.mention} blocked until <t:{int(until.timestamp())}:f>.")


async def setup(bot: commands.Bot):
    await bot.add_cog(TimeClockCog(bot))
