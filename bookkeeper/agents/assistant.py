"""
Bookkeeping Assistant

A chat assistant over the company's own books, backed by Gemini.

CRITICAL BOUNDARIES:
- CAN: Explain entries, summarize recent activity, give bookkeeping advice
- CANNOT: Create, confirm or reject anything; it only reads storage
- MUST: Ground answers in the company context it is given

The answer is streamed. Consumers read an AssistantStream chunk by chunk;
the stream always ends with exactly one chunk marked done, including
after cancel().
"""

from typing import Any, AsyncIterator, Callable, Literal, Optional
from uuid import UUID

import google.generativeai as genai
from pydantic import BaseModel, Field
from tenacity import retry, stop_after_attempt, wait_exponential

from bookkeeper.config import GeminiSettings, get_settings
from bookkeeper.errors import BookkeepingError
from bookkeeper.models.ledger import BankTransaction, EntryStatus, TaxRegime
from bookkeeper.services.storage import LedgerStorageInterface


RECENT_TRANSACTIONS_LIMIT = 10


class AssistantError(BookkeepingError):
    """The language model failed mid-answer."""
    pass


class ChatMessage(BaseModel):
    role: Literal["user", "assistant"] = "user"
    content: str


class AssistantChunk(BaseModel):
    """One piece of a streamed answer. The last chunk has done=True and may be empty."""
    text: str = ""
    done: bool = False


class CompanyContext(BaseModel):
    """What the assistant is told about the company."""

    company_name: str = "Unknown company"
    tax_regime: TaxRegime = TaxRegime.USN
    currency: str = "KZT"
    total_documents: int = 0
    pending_entries: int = 0
    confirmed_entries: int = 0
    recent_transactions: list[BankTransaction] = Field(default_factory=list)


class AssistantStream:
    """
    Cancellable, one-way stream of answer chunks.

    Usage:
        stream = await assistant.ask(company_id, messages)
        async for chunk in stream:
            if chunk.done:
                break
            print(chunk.text, end="")
    """

    def __init__(self, source: AsyncIterator[str]):
        self._source = source
        self._cancelled = False
        self._finished = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        """Stop the stream. The next read yields the end marker."""
        self._cancelled = True

    def __aiter__(self) -> "AssistantStream":
        return self

    async def _close_source(self) -> None:
        aclose = getattr(self._source, "aclose", None)
        if aclose is not None:
            await aclose()

    async def __anext__(self) -> AssistantChunk:
        if self._finished:
            raise StopAsyncIteration

        if self._cancelled:
            self._finished = True
            await self._close_source()
            return AssistantChunk(done=True)

        try:
            text = await self._source.__anext__()
        except StopAsyncIteration:
            self._finished = True
            return AssistantChunk(done=True)
        except Exception as e:
            self._finished = True
            raise AssistantError(f"Assistant stream failed: {e}") from e

        return AssistantChunk(text=text)

    async def collect(self) -> str:
        """Read the whole answer."""
        parts = []
        async for chunk in self:
            parts.append(chunk.text)
        return "".join(parts)


async def _text_chunks(response: Any) -> AsyncIterator[str]:
    async for chunk in response:
        try:
            text = chunk.text
        except ValueError:
            # Chunk carries no text part (e.g. only safety ratings)
            continue
        if text:
            yield text


class BookkeepingAssistant:
    """
    Answers questions about one company's books.

    The model is created per question, because the system instruction
    carries that company's context.
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        settings: Optional[GeminiSettings] = None,
        model_factory: Optional[Callable[[str], Any]] = None,
    ):
        self._storage = storage
        self._settings = settings
        self._model_factory = model_factory or self._create_model
        self._configured = False

    def _create_model(self, system_instruction: str) -> genai.GenerativeModel:
        """Configure Google Generative AI and build a model."""
        settings = self._settings or get_settings().gemini
        if not self._configured:
            genai.configure(api_key=settings.api_key)
            self._configured = True
        return genai.GenerativeModel(
            model_name=settings.model_name,
            system_instruction=system_instruction,
            generation_config={
                "temperature": settings.temperature,
                "max_output_tokens": settings.max_tokens,
            },
        )

    async def build_context(self, company_id: UUID) -> CompanyContext:
        """Gather the company facts the assistant is allowed to see."""
        company = await self._storage.get_company(company_id)
        documents = await self._storage.list_documents(company_id)
        entries = await self._storage.list_entries(company_id)
        transactions = await self._storage.list_transactions(company_id)

        context = CompanyContext(
            total_documents=len(documents),
            pending_entries=sum(1 for e in entries if e.status == EntryStatus.SUGGESTED),
            confirmed_entries=sum(1 for e in entries if e.status == EntryStatus.CONFIRMED),
            recent_transactions=transactions[:RECENT_TRANSACTIONS_LIMIT],
        )
        if company is not None:
            context.company_name = company.name
            context.tax_regime = company.tax_regime
            context.currency = company.currency
        return context

    def system_prompt(self, context: CompanyContext) -> str:
        if context.recent_transactions:
            recent = "\n".join(
                f"- {t.transaction_date.isoformat()}: {t.description} {t.amount} {t.currency}"
                for t in context.recent_transactions
            )
        else:
            recent = "No data"

        return f"""You are an AI bookkeeper helping small business owners with their books and finances.

Current company: {context.company_name}
Tax regime: {context.tax_regime.value}
Currency: {context.currency}

Statistics:
- Total documents: {context.total_documents}
- Entries awaiting review: {context.pending_entries}
- Confirmed entries: {context.confirmed_entries}

Recent transactions:
{recent}

Answer in the language the user writes in, briefly and to the point.
Give practical bookkeeping advice. Use ONLY the figures above when talking
about this company; if they do not answer the question, say so."""

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def _start(self, model: Any, contents: list[dict]) -> Any:
        return await model.generate_content_async(contents, stream=True)

    async def ask(self, company_id: UUID, messages: list[ChatMessage]) -> AssistantStream:
        """
        Ask a question, with the prior conversation.

        Args:
            company_id: Company whose books the question is about
            messages: Conversation so far, the question last

        Returns:
            AssistantStream of answer chunks

        Raises:
            ValueError: If there is no question to answer
        """
        if not messages or not messages[-1].content.strip():
            raise ValueError("Message must not be empty")

        context = await self.build_context(company_id)
        model = self._model_factory(self.system_prompt(context))

        contents = [
            {
                "role": "model" if m.role == "assistant" else "user",
                "parts": [m.content],
            }
            for m in messages
        ]

        try:
            response = await self._start(model, contents)
        except Exception as e:
            raise AssistantError(f"Assistant is unavailable: {e}") from e

        return AssistantStream(_text_chunks(response))
