"""Decision providers answering the engine's yes/no questions.

The engine never talks to the terminal itself. Each question is passed as
a DecisionRequest to a DecisionProvider, so the same recursion runs
interactively, with a fixed answer (``--yes``), or from a script in tests.
"""

import logging
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, TextIO, Union

import click

logger = logging.getLogger(__name__)

# Prompt colour per source root, cycled for more roots than colours
ROOT_COLORS = ("cyan", "magenta", "yellow", "green", "blue", "red")


class DecisionKind(str, Enum):
    """Questions the engine can ask."""

    COPY_FILE = "copy_file"
    """Propose a single file to the roots lacking it"""

    COPY_BATCH = "copy_batch"
    """Propose all files of one extension in a folder at once"""

    COPY_FOLDER = "copy_folder"
    """Propose a folder to the roots lacking it"""

    COPY_TO = "copy_to"
    """Confirm copying an accepted file into one destination"""

    COPY_BATCH_TO = "copy_batch_to"
    """Confirm copying an accepted batch into one destination"""

    COPY_FOLDER_TO = "copy_folder_to"
    """Confirm creating an accepted folder in one destination"""

    EXCLUDE_EXTENSION = "exclude_extension"
    """Exclude an extension from a folder of the source root for good"""


@dataclass(frozen=True)
class DecisionRequest:
    """A single question for a DecisionProvider."""

    kind: DecisionKind
    """What is being asked"""

    prompt: str
    """Rendered question text"""

    from_index: int
    """Index of the source root"""

    to_index: Optional[int] = None
    """Index of the destination root (None for source-side questions)"""

    path: str = ""
    """Relative path or pattern the question is about"""


class DecisionProvider:
    """Base class for decision providers.

    Subclasses implement ``_answer``. Anything but a literal ``True`` is
    treated as "no", and so is any error raised while answering, except a
    user interrupt which cancels the run.
    """

    def __init__(self, record: bool = False) -> None:
        """Initialize decision provider.

        Args:
            record: Whether to keep every request in ``requests``
        """
        self.record = record
        self.requests: list[DecisionRequest] = []

    def decide(self, request: DecisionRequest) -> bool:
        """Answer a question.

        Args:
            request: Question to answer

        Returns:
            True only if the answer is yes
        """
        if self.record:
            self.requests.append(request)
        try:
            answer = self._answer(request)
        except (click.Abort, KeyboardInterrupt):
            raise
        except Exception as e:
            logger.warning(f"Decision for '{request.path}' failed, assuming no: {e}")
            return False
        logger.debug(f"{request.kind.value} {request.path!r}: {answer!r}")
        return answer is True

    def _answer(self, request: DecisionRequest) -> bool:
        raise NotImplementedError


class PromptDecisionProvider(DecisionProvider):
    """Asks the user on the terminal.

    ``y`` or ``yes`` (any case) means yes; an empty or any other answer
    means no. Once the input is closed every remaining question is
    answered no without asking. Ctrl-C raises KeyboardInterrupt.
    """

    def __init__(self, err: bool = False):
        """Initialize prompt provider.

        Args:
            err: Whether to write prompts to stderr instead of stdout
        """
        super().__init__()
        self.err = err
        self.input_closed = False
        # Opened on first use and reused so buffered input is never lost
        self._stdin: Optional[TextIO] = None

    def _answer(self, request: DecisionRequest) -> bool:
        if self.input_closed:
            return False

        color = ROOT_COLORS[request.from_index % len(ROOT_COLORS)]
        click.echo(
            click.style(f"{request.prompt} (y/n) ", fg=color), nl=False, err=self.err
        )
        if self._stdin is None:
            self._stdin = click.get_text_stream("stdin")
        reply = self._stdin.readline()
        if not reply:
            click.echo(err=self.err)
            logger.warning("Input closed, answering no to the remaining questions")
            self.input_closed = True
            return False
        return reply.strip().lower() in ("y", "yes")


class StaticDecisionProvider(DecisionProvider):
    """Gives the same answer to every question."""

    def __init__(self, answer: bool, record: bool = False):
        super().__init__(record=record)
        self.answer = answer

    def _answer(self, request: DecisionRequest) -> bool:
        return self.answer


class ScriptedDecisionProvider(DecisionProvider):
    """Answers from a predefined script, recording every request.

    The script is either a sequence of answers consumed in order (an
    exhausted script answers no) or a callable receiving the request.

    Examples:
        >>> provider = ScriptedDecisionProvider([True, False])
        >>> provider = ScriptedDecisionProvider(
        ...     lambda request: request.kind != DecisionKind.EXCLUDE_EXTENSION
        ... )
    """

    def __init__(
        self,
        answers: Union[Iterable[bool], Callable[[DecisionRequest], bool]],
    ):
        super().__init__(record=True)
        self._callback: Optional[Callable[[DecisionRequest], bool]] = None
        self._answers: Iterator[bool] = iter(())
        if callable(answers):
            self._callback = answers
        else:
            self._answers = iter(answers)

    def _answer(self, request: DecisionRequest) -> bool:
        if self._callback is not None:
            return self._callback(request)
        return next(self._answers, False)
