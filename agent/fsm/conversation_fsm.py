"""
ConversationFSM - state machine for the WhatsApp booking dialogue.

Flow:
    IDLE → CHOOSING_DOCTOR → CHOOSING_DATE → CHOOSING_SLOT
         → COLLECTING_NAME → COLLECTING_RUT → COLLECTING_PHONE → CONFIRMING
         → (booked) session cleared

Key responsibilities:
- Decide the next step for one inbound message given the current step
- Query live availability and book through BookingTransaction
- Return outbound messages/notifications as effects; never send them itself

Session clearing is expressed as a transition to Idle. HANDOFF is a sink
state: only an explicit reset keyword leaves it.
"""

import logging
from dataclasses import fields
from datetime import date as date_cls
from typing import Awaitable, Callable, ClassVar

from agent.fsm.effects import (
    Effect,
    ListRow,
    ListSection,
    LogActivity,
    NotifyHandoff,
    ReplyButton,
    SendButtons,
    SendList,
    SendText,
)
from agent.fsm.intent_classifier import IntentClassifier
from agent.fsm.models import (
    ChoosingDate,
    ChoosingDoctor,
    ChoosingSlot,
    CollectingName,
    CollectingPhone,
    CollectingRut,
    Confirming,
    ConversationState,
    ConversationStep,
    Handoff,
    Idle,
    InboundMessage,
    IntentType,
    MessageKind,
    TransitionResult,
)
from agent.services.availability_service import AvailabilityService
from agent.transactions.booking_transaction import BookingErrorCode, BookingTransaction
from agent.validators.identity_validators import (
    validate_patient_name,
    validate_phone,
    validate_rut,
)
from database.models import PatientIdentity, Slot
from shared.staff_cache import StaffCache

logger = logging.getLogger(__name__)

# Interactive reply ids
ACTION_BOOK = "action_book"
ACTION_INFO = "action_info"
ACTION_HANDOFF = "action_handoff"
CONFIRM_YES = "confirm_yes"
CONFIRM_NO = "confirm_no"
STAFF_PREFIX = "staff_"
DATE_PREFIX = "date_"
SLOT_PREFIX = "slot_"

CANCEL_KEYWORDS = frozenset({"cancelar"})
RESET_KEYWORDS = frozenset({"menu", "menú", "reiniciar"})
YES_WORDS = frozenset({"si", "sí", "confirmar", "confirmo"})
NO_WORDS = frozenset({"no"})

SLOT_UNAVAILABLE_APOLOGY = {
    BookingErrorCode.SLOT_TAKEN: "Lo sentimos, la hora seleccionada acaba de ser reservada por otro paciente.",
    BookingErrorCode.SLOT_CLOSED: "Lo sentimos, la hora seleccionada ya no está disponible.",
}

WEEKDAYS_ES = ("Lun", "Mar", "Mié", "Jue", "Vie", "Sáb", "Dom")

# WhatsApp list row title limit
ROW_TITLE_MAX = 24

DEFAULT_PATIENT_NAME = "Paciente"

Handler = Callable[[ConversationStep, InboundMessage], Awaitable[TransitionResult]]


class ConversationFSM:
    """
    Booking dialogue controller.

    Stateless between calls: the current step is passed in and the next
    step is returned, so one instance serves every caller.

    Example:
        >>> fsm = ConversationFSM(staff_cache, availability, booking, classifier, center_id="LosAndes")
        >>> result = await fsm.handle(Idle(), InboundMessage(phone="56987654321", text="Quiero una hora"))
        >>> result.step.state
        ConversationState.CHOOSING_DOCTOR
    """

    PROMPTS: ClassVar[dict[ConversationState, str]] = {
        ConversationState.CHOOSING_DOCTOR: "Por favor, seleccione un profesional de la lista.",
        ConversationState.CHOOSING_DATE: "Por favor, seleccione una fecha de la lista.",
        ConversationState.CHOOSING_SLOT: "Por favor, seleccione un horario de la lista.",
        ConversationState.COLLECTING_NAME: "Por favor ingrese su NOMBRE COMPLETO:",
        ConversationState.COLLECTING_RUT: "Por favor ingrese su RUT (con guion y dígito verificador):",
        ConversationState.COLLECTING_PHONE: "Por favor ingrese un número de TELÉFONO de contacto:",
        ConversationState.CONFIRMING: "Por favor, confirme o cancele su cita con los botones.",
    }

    def __init__(
        self,
        staff_cache: StaffCache,
        availability: AvailabilityService,
        booking: BookingTransaction,
        classifier: IntentClassifier,
        center_id: str,
        center_name: str = "Centro Médico Los Andes",
        center_info: str = "",
        days_ahead: int = 7,
    ):
        self._staff_cache = staff_cache
        self._availability = availability
        self._booking = booking
        self._classifier = classifier
        self._center_id = center_id
        self._center_name = center_name
        self._center_info = center_info or (
            f"Somos {center_name}. Atendemos de Lunes a Viernes de 08:00 a 20:00."
        )
        self._days_ahead = days_ahead

        self._handlers: dict[ConversationState, Handler] = {
            ConversationState.IDLE: self._on_idle,
            ConversationState.CHOOSING_DOCTOR: self._on_choosing_doctor,
            ConversationState.CHOOSING_DATE: self._on_choosing_date,
            ConversationState.CHOOSING_SLOT: self._on_choosing_slot,
            ConversationState.COLLECTING_NAME: self._on_collecting_name,
            ConversationState.COLLECTING_RUT: self._on_collecting_rut,
            ConversationState.COLLECTING_PHONE: self._on_collecting_phone,
            ConversationState.CONFIRMING: self._on_confirming,
            ConversationState.HANDOFF: self._on_handoff,
        }

    async def handle(self, step: ConversationStep, message: InboundMessage) -> TransitionResult:
        """
        Process one inbound message.

        Args:
            step: Current step (Idle for callers with no stored conversation)
            message: Normalized inbound message

        Returns:
            TransitionResult with the next step and the effects to execute
        """
        from_state = step.state

        if (
            not isinstance(step, (Idle, Handoff))
            and message.kind == MessageKind.TEXT
            and message.normalized_text in CANCEL_KEYWORDS
        ):
            result = TransitionResult(
                step=Idle(),
                effects=[
                    SendText(to=message.phone, body="Agendamiento cancelado."),
                    self._menu(message.phone, self._display_name(step, message)),
                ],
            )
        else:
            result = await self._handlers[from_state](step, message)

        logger.info(
            "Conversation transition: %s -> %s | effects=%d",
            from_state.value,
            result.step.state.value,
            len(result.effects),
            extra={"caller_phone": message.phone, "center_id": self._center_id},
        )
        return result

    # ------------------------------------------------------------------
    # State handlers
    # ------------------------------------------------------------------

    async def _on_idle(self, step: Idle, message: InboundMessage) -> TransitionResult:
        to = message.phone
        name = self._display_name(step, message)

        if message.kind == MessageKind.INTERACTIVE:
            if message.reply_id == ACTION_BOOK:
                return await self._start_booking(to)
            if message.reply_id == ACTION_HANDOFF:
                return self._handoff(
                    message,
                    "Entendido. Un ejecutivo se contactará con usted a la brevedad. "
                    "Muchas gracias por su paciencia.",
                    reason="menu",
                )
            if message.reply_id == ACTION_INFO:
                return TransitionResult(step=Idle(), effects=[SendText(to=to, body=self._center_info)])
            return TransitionResult(step=Idle(), effects=[self._menu(to, name)])

        if not message.text.strip():
            return TransitionResult(step=Idle(), effects=[self._menu(to, name)])

        intent = await self._classifier.classify(message.text, name)

        if intent.type == IntentType.BOOKING:
            return await self._start_booking(to)
        if intent.type == IntentType.HANDOFF:
            return self._handoff(
                message,
                "Estimado/a, le derivamos con un asistente humano. En breve le contactarán.",
                reason="intent",
            )
        return TransitionResult(
            step=Idle(),
            effects=[SendText(to=to, body=intent.say), self._menu(to, name)],
        )

    async def _on_choosing_doctor(self, step: ChoosingDoctor, message: InboundMessage) -> TransitionResult:
        staff_id = _strip_prefix(message, STAFF_PREFIX)
        member = await self._staff_cache.find(staff_id) if staff_id else None
        if member is None:
            return await self._reprompt(step, message)

        next_step = ChoosingDate(center_id=step.center_id, staff_id=member.id, staff_name=member.full_name)
        return TransitionResult(step=next_step, effects=[self._date_list(message.phone, member.full_name)])

    async def _on_choosing_date(self, step: ChoosingDate, message: InboundMessage) -> TransitionResult:
        day = _strip_prefix(message, DATE_PREFIX)
        if not day or day not in self._availability.upcoming_dates(self._days_ahead):
            return await self._reprompt(step, message)

        slots = await self._availability.list_open_slots(step.center_id, step.staff_id, day)
        if not slots:
            return TransitionResult(
                step=step,
                effects=[
                    SendText(
                        to=message.phone,
                        body="No hay horas disponibles para esa fecha. Por favor, seleccione otra fecha.",
                    ),
                    self._date_list(message.phone, step.staff_name),
                ],
            )

        next_step = ChoosingSlot(**_fields(step), date=day)
        return TransitionResult(step=next_step, effects=[self._slot_list(message.phone, slots)])

    async def _on_choosing_slot(self, step: ChoosingSlot, message: InboundMessage) -> TransitionResult:
        if message.kind != MessageKind.INTERACTIVE or not (message.reply_id or "").startswith(SLOT_PREFIX):
            return await self._reprompt(step, message)

        # Verify against live availability; the list the caller saw may be stale
        slots = await self._availability.list_open_slots(step.center_id, step.staff_id, step.date)
        selected = next((s for s in slots if s.id == message.reply_id), None)
        if selected is None:
            return self._reoffer_slots(
                step, message.phone, slots, "Lo sentimos, esa hora ya no está disponible."
            )

        next_step = CollectingName(**_fields(step), slot_id=selected.id, slot_time=selected.time)
        return TransitionResult(
            step=next_step,
            effects=[
                SendText(
                    to=message.phone,
                    body="Perfecto. Para formalizar el agendamiento, por favor ingrese su NOMBRE COMPLETO:",
                )
            ],
        )

    async def _on_collecting_name(self, step: CollectingName, message: InboundMessage) -> TransitionResult:
        if message.kind != MessageKind.TEXT:
            return await self._reprompt(step, message)

        result = validate_patient_name(message.text)
        if not result.valid:
            return TransitionResult(step=step, effects=[SendText(to=message.phone, body=result.error_message)])

        return TransitionResult(
            step=CollectingRut(**_fields(step), patient_name=result.value),
            effects=[
                SendText(
                    to=message.phone,
                    body=f"Gracias {result.value}. Ahora, por favor ingrese su RUT "
                    "(con guion y dígito verificador):",
                )
            ],
        )

    async def _on_collecting_rut(self, step: CollectingRut, message: InboundMessage) -> TransitionResult:
        if message.kind != MessageKind.TEXT:
            return await self._reprompt(step, message)

        result = validate_rut(message.text)
        if not result.valid:
            return TransitionResult(step=step, effects=[SendText(to=message.phone, body=result.error_message)])

        return TransitionResult(
            step=CollectingPhone(**_fields(step), patient_rut=result.value),
            effects=[SendText(to=message.phone, body="Finalmente, ingrese un número de TELÉFONO de contacto:")],
        )

    async def _on_collecting_phone(self, step: CollectingPhone, message: InboundMessage) -> TransitionResult:
        if message.kind != MessageKind.TEXT:
            return await self._reprompt(step, message)

        result = validate_phone(message.text)
        if not result.valid:
            return TransitionResult(step=step, effects=[SendText(to=message.phone, body=result.error_message)])

        next_step = Confirming(**_fields(step), patient_phone=result.value)
        return TransitionResult(step=next_step, effects=[self._confirmation(message.phone, next_step)])

    async def _on_confirming(self, step: Confirming, message: InboundMessage) -> TransitionResult:
        if message.reply_id == CONFIRM_YES or (
            message.kind == MessageKind.TEXT and message.normalized_text in YES_WORDS
        ):
            return await self._book(step, message)

        if message.reply_id == CONFIRM_NO or (
            message.kind == MessageKind.TEXT and message.normalized_text in NO_WORDS
        ):
            return TransitionResult(
                step=Idle(),
                effects=[
                    SendText(
                        to=message.phone,
                        body="Agendamiento cancelado. ¿Hay algo más en lo que podamos asistirle?",
                    ),
                    self._menu(message.phone, self._display_name(step, message)),
                ],
            )

        return await self._reprompt(step, message)

    async def _on_handoff(self, step: Handoff, message: InboundMessage) -> TransitionResult:
        if message.kind == MessageKind.TEXT and message.normalized_text in RESET_KEYWORDS:
            return TransitionResult(
                step=Idle(),
                effects=[self._menu(message.phone, self._display_name(step, message))],
            )
        # Waiting for a human operator
        return TransitionResult(step=step)

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    async def _start_booking(self, to: str) -> TransitionResult:
        staff = await self._staff_cache.get_or_refresh()
        if not staff:
            return TransitionResult(
                step=Idle(),
                effects=[
                    SendText(
                        to=to,
                        body="Lo sentimos, no hay profesionales disponibles para agendar en este momento.",
                    )
                ],
            )
        return TransitionResult(
            step=ChoosingDoctor(center_id=self._center_id),
            effects=[self._staff_list(to, staff)],
        )

    def _handoff(self, message: InboundMessage, body: str, reason: str) -> TransitionResult:
        contact_name = message.contact_name or DEFAULT_PATIENT_NAME
        return TransitionResult(
            step=Handoff(),
            effects=[
                SendText(to=message.phone, body=body),
                NotifyHandoff(phone=message.phone, contact_name=contact_name, reason=reason),
                LogActivity(
                    action="HANDOFF_REQUESTED",
                    entity_type="conversation",
                    entity_id=message.phone,
                    details={"reason": reason, "contact_name": contact_name},
                ),
            ],
        )

    async def _book(self, step: Confirming, message: InboundMessage) -> TransitionResult:
        template = Slot(
            id=step.slot_id,
            center_id=step.center_id,
            professional_id=step.staff_id,
            date=step.date,
            time=step.slot_time,
        )
        patient = PatientIdentity(name=step.patient_name, rut=step.patient_rut, phone=step.patient_phone)
        result = await self._booking.book(step.slot_id, patient, slot_template=template, booked_via="whatsapp")

        if result.success:
            return TransitionResult(
                step=Idle(),
                effects=[
                    SendText(
                        to=message.phone,
                        body=(
                            "¡Cita confirmada exitosamente! ✅\n\n"
                            "Resumen:\n"
                            f"- Profesional: {step.staff_name}\n"
                            f"- Fecha: {step.date}\n"
                            f"- Hora: {step.slot_time}\n"
                            f"- Paciente: {step.patient_name}\n\n"
                            f"Gracias por confiar en {self._center_name}."
                        ),
                    )
                ],
            )

        if result.error_code in (BookingErrorCode.SLOT_TAKEN, BookingErrorCode.SLOT_CLOSED):
            # Re-query live availability; never replay the list shown earlier
            slots = await self._availability.list_open_slots(step.center_id, step.staff_id, step.date)
            choosing = ChoosingSlot(
                center_id=step.center_id,
                staff_id=step.staff_id,
                staff_name=step.staff_name,
                date=step.date,
            )
            return self._reoffer_slots(
                choosing,
                message.phone,
                slots,
                SLOT_UNAVAILABLE_APOLOGY[result.error_code],
            )

        return TransitionResult(
            step=Idle(),
            effects=[
                SendText(
                    to=message.phone,
                    body="Lo sentimos, hubo un error técnico al registrar su cita. "
                    "Por favor, reintente en unos minutos o hable con un ejecutivo.",
                )
            ],
        )

    def _reoffer_slots(
        self, step: ChoosingSlot, to: str, slots: list[Slot], apology: str
    ) -> TransitionResult:
        """Offer fresh slots for the same date, or fall back to date selection."""
        if slots:
            return TransitionResult(
                step=step,
                effects=[
                    SendText(to=to, body=f"{apology} Por favor, seleccione otro horario:"),
                    self._slot_list(to, slots),
                ],
            )

        return TransitionResult(
            step=ChoosingDate(center_id=step.center_id, staff_id=step.staff_id, staff_name=step.staff_name),
            effects=[
                SendText(to=to, body=f"{apology} No quedan horas para esa fecha, por favor seleccione otra."),
                self._date_list(to, step.staff_name),
            ],
        )

    async def _reprompt(self, step: ConversationStep, message: InboundMessage) -> TransitionResult:
        """Repeat the current state's instructions without changing state."""
        to = message.phone
        logger.warning(
            f"Unrecognized input in {step.state.value} | kind={message.kind.value}",
            extra={"caller_phone": to, "center_id": self._center_id},
        )
        effects: list[Effect] = [SendText(to=to, body=self.PROMPTS[step.state])]

        if isinstance(step, ChoosingDoctor):
            staff = await self._staff_cache.get_or_refresh()
            if staff:
                effects.append(self._staff_list(to, staff))
        elif isinstance(step, ChoosingDate):
            effects.append(self._date_list(to, step.staff_name))
        elif isinstance(step, ChoosingSlot):
            slots = await self._availability.list_open_slots(step.center_id, step.staff_id, step.date)
            if slots:
                effects.append(self._slot_list(to, slots))
        elif isinstance(step, Confirming):
            effects = [self._confirmation(to, step)]

        return TransitionResult(step=step, effects=effects)

    # ------------------------------------------------------------------
    # Message builders
    # ------------------------------------------------------------------

    def _menu(self, to: str, name: str) -> SendButtons:
        return SendButtons(
            to=to,
            body=f"Hola {name}, bienvenido al {self._center_name}. ¿Cómo podemos ayudarle hoy?",
            buttons=[
                ReplyButton(ACTION_BOOK, "📅 Agendar hora"),
                ReplyButton(ACTION_INFO, "ℹ️ Información"),
                ReplyButton(ACTION_HANDOFF, "👤 Hablar con persona"),
            ],
        )

    def _staff_list(self, to: str, staff) -> SendList:
        rows = [
            ListRow(
                id=f"{STAFF_PREFIX}{member.id}",
                title=member.full_name[:ROW_TITLE_MAX],
                description=member.specialty or "Especialista",
            )
            for member in staff
        ]
        return SendList(
            to=to,
            title="Agendamiento",
            body="Seleccione el profesional con quien desea atenderse:",
            button_label="Ver Médicos",
            sections=[ListSection(title="Profesionales", rows=rows)],
        )

    def _date_list(self, to: str, staff_name: str) -> SendList:
        dates = self._availability.upcoming_dates(self._days_ahead)
        rows = [
            ListRow(id=f"{DATE_PREFIX}{day}", title=_date_label(day, index), description=day)
            for index, day in enumerate(dates)
        ]
        return SendList(
            to=to,
            title="Fecha",
            body=f"Profesional: {staff_name}. Seleccione una fecha:",
            button_label="Ver Fechas",
            sections=[ListSection(title="Disponibilidad", rows=rows)],
        )

    def _slot_list(self, to: str, slots: list[Slot]) -> SendList:
        return SendList(
            to=to,
            title="Horario",
            body="Seleccione el bloque horario:",
            button_label="Ver Horas",
            sections=[
                ListSection(
                    title="Horarios Disponibles",
                    rows=[ListRow(id=slot.id, title=slot.time) for slot in slots],
                )
            ],
        )

    def _confirmation(self, to: str, step: Confirming) -> SendButtons:
        summary = (
            "POR FAVOR CONFIRME SUS DATOS:\n\n"
            f"- Profesional: {step.staff_name}\n"
            f"- Fecha: {step.date}\n"
            f"- Hora: {step.slot_time}\n"
            f"- Paciente: {step.patient_name}\n"
            f"- RUT: {step.patient_rut}\n"
            f"- Teléfono: {step.patient_phone}"
        )
        return SendButtons(
            to=to,
            body=summary,
            buttons=[
                ReplyButton(CONFIRM_YES, "✅ Confirmar Cita"),
                ReplyButton(CONFIRM_NO, "❌ Cancelar"),
            ],
        )

    @staticmethod
    def _display_name(step: ConversationStep, message: InboundMessage) -> str:
        return message.contact_name or getattr(step, "patient_name", None) or DEFAULT_PATIENT_NAME


def _strip_prefix(message: InboundMessage, prefix: str) -> str | None:
    """Return the id suffix of an interactive reply with the given prefix."""
    if message.kind != MessageKind.INTERACTIVE or not message.reply_id:
        return None
    if not message.reply_id.startswith(prefix):
        return None
    return message.reply_id[len(prefix):] or None


def _fields(step: ConversationStep) -> dict:
    """Instance fields of a step, to carry them into the next state."""
    return {f.name: getattr(step, f.name) for f in fields(step)}


def _date_label(day: str, index: int) -> str:
    if index == 0:
        return "Hoy"
    if index == 1:
        return "Mañana"
    parsed = date_cls.fromisoformat(day)
    return f"{WEEKDAYS_ES[parsed.weekday()]} {parsed:%d/%m}"

