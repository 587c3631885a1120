"""Stack Overflow source plugin: questions and their top answers."""

import asyncio
import logging
import math
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from api import stackoverflow as so_api
from models.config import Depth
from models.research import Document
from plugins.base import BaseSourcePlugin
from plugins.types import PluginContext
from utils.helpers import html_to_text, query_terms, term_overlap, truncate

logger = logging.getLogger(__name__)

ANSWER_LIMITS = {Depth.QUICK: 2, Depth.STANDARD: 3, Depth.DEEP: 5}
ANSWER_SCORE_THRESHOLD = 5


def _epoch_to_iso(value: Optional[int]) -> Optional[str]:
    if not value:
        return None
    return datetime.fromtimestamp(value, tz=timezone.utc).isoformat()


class StackOverflowPlugin(BaseSourcePlugin):
    id = "stackoverflow"
    name = "Stack Overflow"
    description = "Searches Stack Overflow questions and top answers"
    keywords = (
        "stackoverflow",
        "stack overflow",
        "error",
        "exception",
        "bug",
        "how to",
        "implement",
        "api",
        "function",
        "debug",
        "python",
        "javascript",
        "typescript",
        "react",
        "node",
        "java",
        "rust",
        "golang",
        "sql",
        "css",
        "docker",
        "kubernetes",
        "deployment",
    )
    depth_limits = {Depth.QUICK: 5, Depth.STANDARD: 10, Depth.DEEP: 20}

    async def do_search(self, context: PluginContext) -> List[Document]:
        limit = self.limit_for(context.depth)
        terms = query_terms(context.query)

        context.update_progress(10, "Searching Stack Overflow")
        questions = await so_api.search_questions(
            context.query, limit, tag=so_api.detect_tag(context.query)
        )
        context.update_progress(40, f"Stack Overflow: {len(questions)} questions")

        documents = [self._question_document(q, terms) for q in questions]

        worth_answers = [
            q
            for q in questions
            if q.get("accepted_answer_id") or q.get("score", 0) > ANSWER_SCORE_THRESHOLD
        ]
        if worth_answers:
            answer_limit = ANSWER_LIMITS.get(context.depth, 3)
            batches = await asyncio.gather(
                *(so_api.fetch_answers(q["question_id"], answer_limit) for q in worth_answers),
                return_exceptions=True,
            )
            for question, answers in zip(worth_answers, batches):
                if isinstance(answers, BaseException):
                    # Questions alone are still useful
                    logger.warning(
                        f"SO answers for {question['question_id']} failed: {answers}"
                    )
                    continue
                documents += [self._answer_document(question, a) for a in answers]

        context.update_progress(90, f"Stack Overflow: {len(documents)} results")
        return documents

    @staticmethod
    def _question_relevance(question: Dict[str, Any], terms: List[str]) -> float:
        votes = min(math.log10(max(question.get("score", 0), 0) + 1) / 3, 1.0)
        answered = 0.15 if question.get("accepted_answer_id") else 0.0
        answers = 0.05 if question.get("answer_count", 0) > 0 else 0.0
        overlap = term_overlap(terms, question.get("title", ""))
        return round(min(0.35 * votes + 0.45 * overlap + answered + answers, 1.0), 3)

    def _question_document(self, question: Dict[str, Any], terms: List[str]) -> Document:
        return self.make_document(
            f"q-{question.get('question_id')}",
            html_to_text(question.get("title", "")),
            truncate(html_to_text(question.get("body")), 2000),
            url=question.get("url"),
            relevance=self._question_relevance(question, terms),
            timestamp=_epoch_to_iso(question.get("creation_date")),
            type="question",
            score=question.get("score", 0),
            answer_count=question.get("answer_count", 0),
            is_answered=question.get("is_answered", False),
            tags=question.get("tags", []),
        )

    def _answer_document(self, question: Dict[str, Any], answer: Dict[str, Any]) -> Document:
        votes = min(math.log10(max(answer.get("score", 0), 0) + 1) / 3, 1.0)
        accepted = answer.get("is_accepted", False)
        relevance = round(min(0.6 * votes + (0.4 if accepted else 0.1), 1.0), 3)
        label = "Accepted answer" if accepted else "Answer"
        return self.make_document(
            f"a-{answer.get('answer_id')}",
            f"{label}: {html_to_text(question.get('title', ''))}",
            truncate(html_to_text(answer.get("body")), 2000),
            url=f"https://stackoverflow.com/a/{answer.get('answer_id')}",
            relevance=relevance,
            timestamp=_epoch_to_iso(answer.get("creation_date")),
            type="answer",
            score=answer.get("score", 0),
            is_accepted=accepted,
            question_id=question.get("question_id"),
        )
