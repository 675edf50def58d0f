"""
Informações fixas da barbearia usadas no agendamento.
"""
from typing import List


def _half_hour_slots(first_hour: int, last_hour: int) -> List[str]:
    slots = []
    for hour in range(first_hour, last_hour + 1):
        slots.append(f"{hour:02d}:00")
        slots.append(f"{hour:02d}:30")
    return slots


# Horários de atendimento: 08:00 até 19:30, de meia em meia hora
TIME_SLOTS: List[str] = _half_hour_slots(8, 19)

APPOINTMENT_STATUSES = ("agendado", "concluido", "cancelado")

# Fechado aos domingos (date.weekday())
SUNDAY = 6
