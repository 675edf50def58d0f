"""
Hierarquia de erros de negócio da barbearia.

Cada erro carrega um `code` estável (usado pela API) e uma mensagem
pronta para ser exibida ao usuário.
"""
from typing import Optional


class BarbershopError(Exception):
    """Base de todos os erros de negócio."""

    code = "erro"
    default_message = "Não foi possível concluir a operação."

    def __init__(self, message: Optional[str] = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(BarbershopError):
    code = "dados_invalidos"
    default_message = "Dados inválidos."


class NotFoundError(BarbershopError):
    code = "nao_encontrado"
    default_message = "Registro não encontrado."


class PersistenceError(BarbershopError):
    """Falha de comunicação com o banco. O estado em memória não é alterado."""

    code = "falha_persistencia"
    default_message = "Falha ao acessar o banco de dados. Tente novamente."


class ConcurrentUpdateError(BarbershopError):
    code = "conflito_concorrencia"
    default_message = "O registro foi alterado por outra operação. Tente novamente."


# --- Sorteios ---

class ParticipationRejected(BarbershopError):
    """Base dos motivos de recusa de participação em sorteio."""

    code = "participacao_recusada"


class RaffleNotActiveError(ParticipationRejected):
    code = "sorteio_inativo"
    default_message = "Este sorteio não está mais ativo."


class CapacityExceededError(ParticipationRejected):
    code = "sorteio_lotado"
    default_message = "O sorteio atingiu o número máximo de participantes."


class WindowClosedError(ParticipationRejected):
    code = "inscricoes_encerradas"
    default_message = "O período de participação deste sorteio já terminou."


class RaffleNotStartedError(WindowClosedError):
    code = "sorteio_nao_iniciado"
    default_message = "Este sorteio ainda não começou."


class AlreadyParticipatingError(ParticipationRejected):
    code = "ja_participando"
    default_message = "Você já está participando deste sorteio."


class DrawRejected(BarbershopError):
    code = "sorteio_recusado"


class NoParticipantsError(DrawRejected):
    code = "sem_participantes"
    default_message = "Não há participantes para sortear."


class AlreadyDrawnError(DrawRejected):
    code = "ja_sorteado"
    default_message = "O ganhador deste sorteio já foi sorteado."


class RaffleNotDrawableError(DrawRejected):
    code = "sorteio_indisponivel"
    default_message = "Este sorteio não está disponível para sorteio."


# --- Fidelidade ---

class InsufficientPointsError(BarbershopError):
    code = "pontos_insuficientes"
    default_message = "Pontos insuficientes."
