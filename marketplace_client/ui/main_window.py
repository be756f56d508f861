from __future__ import annotations

import asyncio
from concurrent.futures import Future
import logging
import threading
from typing import Any, Callable, Coroutine

import customtkinter as ctk

from marketplace_client.config import AppSettings, ConfigurationError
from marketplace_client.connectivity import banner_message
from marketplace_client.errors import Messages
from marketplace_client.logging_utils import configure_logging
from marketplace_client.models import ConnectivityStatus, MessageAction, MessageBoxState, Session
from marketplace_client.services import AppContext

logger = logging.getLogger(__name__)

THEME_LABELS = {"Light": "light", "Dark": "dark", "System": "system"}
VARIANT_COLORS = {
	"primary": ("#2563eb", "#1d4ed8"),
	"secondary": ("#6b7280", "#4b5563"),
	"danger": ("#dc2626", "#b91c1c"),
}


class AsyncRunner:
	"""Runs one asyncio loop in a daemon thread for the Tk main loop to submit work to."""

	def __init__(self):
		self._loop = asyncio.new_event_loop()
		self._thread = threading.Thread(target=self._loop.run_forever, daemon=True)
		self._thread.start()

	def submit(self, coro: Coroutine[Any, Any, Any]) -> Future:
		return asyncio.run_coroutine_threadsafe(coro, self._loop)

	def shutdown(self) -> None:
		self._loop.call_soon_threadsafe(self._loop.stop)
		self._thread.join(timeout=2)


class MessageBoxDialog(ctk.CTkToplevel):
	def __init__(self, master: "MainWindow", state: MessageBoxState):
		super().__init__(master)
		self.title(state.title or "")
		self.geometry("420x200")
		self.resizable(False, False)
		self.transient(master)
		self.protocol("WM_DELETE_WINDOW", lambda: master.dispatch_action(MessageAction(label=Messages.BACK)))

		if state.title:
			ctk.CTkLabel(self, text=state.title, font=ctk.CTkFont(size=16, weight="bold")).pack(
				anchor="w", padx=16, pady=(16, 4)
			)
		if state.message:
			ctk.CTkLabel(self, text=state.message, wraplength=380, justify="left").pack(
				anchor="w", padx=16, pady=(0, 12)
			)

		actions_row = ctk.CTkFrame(self, fg_color="transparent")
		actions_row.pack(fill="x", side="bottom", padx=16, pady=16)
		for action in state.actions:
			fg_color, hover_color = VARIANT_COLORS.get(action.variant, VARIANT_COLORS["primary"])
			ctk.CTkButton(
				actions_row,
				text=action.label,
				fg_color=fg_color,
				hover_color=hover_color,
				command=lambda action=action: master.dispatch_action(action),
			).pack(side="right", padx=(6, 0))

		self.after(10, self.grab_set)


class MainWindow(ctk.CTk):
	def __init__(self, context: AppContext, runner: AsyncRunner):
		super().__init__()
		self._context = context
		self._runner = runner
		self._dialog: MessageBoxDialog | None = None
		self.title("Marketplace Client")
		self.geometry("640x420")
		self.minsize(560, 380)

		self._banner = ctk.CTkFrame(self, fg_color=("#fee2e2", "#7f1d1d"))
		self._banner_label = ctk.CTkLabel(self._banner, text="")
		self._banner_label.pack(side="left", padx=12, pady=6)
		ctk.CTkButton(
			self._banner,
			text=Messages.RETRY,
			width=80,
			command=lambda: self._runner.submit(self._context.monitor.check()),
		).pack(side="right", padx=12, pady=6)

		self._status_label = ctk.CTkLabel(self, text="Loading session...")
		self._status_label.pack(anchor="w", padx=16, pady=(16, 8))

		form = ctk.CTkFrame(self)
		form.pack(fill="x", padx=16, pady=8)

		self._phone_entry = ctk.CTkEntry(form, placeholder_text="Phone number")
		self._phone_entry.pack(fill="x", padx=12, pady=(12, 6))
		self._code_entry = ctk.CTkEntry(form, placeholder_text="Verification code")
		self._code_entry.pack(fill="x", padx=12, pady=6)

		action_row = ctk.CTkFrame(form, fg_color="transparent")
		action_row.pack(fill="x", padx=6, pady=(6, 12))

		self._request_btn = ctk.CTkButton(action_row, text="Request code", command=self._request_code)
		self._request_btn.pack(side="left", padx=6)
		self._sign_in_btn = ctk.CTkButton(action_row, text="Sign in", command=self._sign_in)
		self._sign_in_btn.pack(side="left", padx=6)
		self._sign_out_btn = ctk.CTkButton(action_row, text="Sign out", command=self._sign_out)
		self._sign_out_btn.pack(side="left", padx=6)

		theme_row = ctk.CTkFrame(self, fg_color="transparent")
		theme_row.pack(fill="x", padx=16, pady=8)
		ctk.CTkLabel(theme_row, text="Theme").pack(side="left", padx=(0, 8))
		self._theme_mode = ctk.StringVar(value="System")
		ctk.CTkSegmentedButton(
			theme_row,
			values=list(THEME_LABELS),
			variable=self._theme_mode,
			command=self._change_theme,
		).pack(side="left")

		self._unsubscribers = [
			context.session.subscribe(lambda session: self.after(0, self._render_session, session)),
			context.monitor.subscribe(lambda status: self.after(0, self._render_banner, status)),
			context.message_box.subscribe(lambda state: self.after(0, self._render_message_box, state)),
		]
		self.protocol("WM_DELETE_WINDOW", self._close)

		self._render_session(context.session.session)
		self._render_banner(context.monitor.status)
		self._submit(context.preferences.get_theme(), self._apply_theme)
		self._submit(context.start())

	def dispatch_action(self, action: MessageAction) -> None:
		self._runner.submit(self._context.message_box.dispatch(action))

	def _submit(self, coro, on_result: Callable[[Any], None] | None = None) -> None:
		future = self._runner.submit(coro)

		def done(completed: Future):
			try:
				result = completed.result()
			except Exception:
				logger.exception("Background task failed")
				return
			if on_result is not None:
				self.after(0, lambda: on_result(result))

		future.add_done_callback(done)

	def _render_session(self, session: Session):
		if session.is_loading:
			self._status_label.configure(text="Loading session...")
		elif session.is_authenticated:
			name = (session.user or {}).get("name") or (session.user or {}).get("phone") or "profile unavailable"
			suffix = f" ({session.error})" if session.error else ""
			self._status_label.configure(text=f"Signed in: {name}{suffix}")
		elif session.error:
			self._status_label.configure(text=f"Not signed in ({session.error})")
		else:
			self._status_label.configure(text="Not signed in")

		signed_in = session.is_authenticated and not session.is_loading
		self._sign_in_btn.configure(state="disabled" if signed_in else "normal")
		self._request_btn.configure(state="disabled" if signed_in else "normal")
		self._sign_out_btn.configure(state="normal" if signed_in else "disabled")

	def _render_banner(self, status: ConnectivityStatus):
		message = banner_message(status)
		if message is None:
			self._banner.pack_forget()
			return
		self._banner_label.configure(text=message)
		self._banner.pack(fill="x", before=self._status_label)

	def _render_message_box(self, state: MessageBoxState):
		if self._dialog is not None:
			self._dialog.grab_release()
			self._dialog.destroy()
			self._dialog = None
		if state.is_visible:
			self._dialog = MessageBoxDialog(self, state)

	def _request_code(self):
		self._submit(self._context.request_otp(self._phone_entry.get()))

	def _sign_in(self):
		self._submit(
			self._context.sign_in_with_otp(self._phone_entry.get(), self._code_entry.get()),
			lambda signed_in: signed_in and self._code_entry.delete(0, "end"),
		)

	def _sign_out(self):
		self._submit(self._context.sign_out())

	def _change_theme(self, label: str):
		mode = THEME_LABELS[label]
		ctk.set_appearance_mode(mode)
		self._submit(self._context.preferences.set_theme(mode))

	def _apply_theme(self, mode: str):
		ctk.set_appearance_mode(mode)
		for label, value in THEME_LABELS.items():
			if value == mode:
				self._theme_mode.set(label)

	def _close(self):
		for unsubscribe in self._unsubscribers:
			unsubscribe()
		try:
			self._runner.submit(self._context.stop()).result(timeout=5)
		except Exception:
			logger.exception("Shutdown did not complete cleanly")
		self._runner.shutdown()
		self.destroy()


def run_app() -> None:
	configure_logging()
	ctk.set_appearance_mode("System")
	ctk.set_default_color_theme("blue")

	try:
		settings = AppSettings.from_env()
	except ConfigurationError as exc:
		app = ctk.CTk()
		app.title("Marketplace Client - Configuration Error")
		app.geometry("760x360")
		message = ctk.CTkTextbox(app)
		message.pack(fill="both", expand=True, padx=16, pady=16)
		message.insert(
			"1.0",
			"Configuration error. Fix the environment variables and restart:\n\n"
			f"{exc}\n",
		)
		app.mainloop()
		return

	configure_logging(settings.log_level)
	context = AppContext.build(settings)
	window = MainWindow(context, AsyncRunner())
	window.mainloop()
