"""
Content Validator

Scores a generated answer against the question that produced it.

Checks:
-------
1. code       fenced code blocks pass a per-language syntax sanity check
2. grounding  factual statements are found again in the course materials
3. rubric     an LLM judge rates accuracy / completeness / clarity / relevance
4. selfEval   an LLM rates the answer 1-10 with confidence and issues

Combination:
------------
weights = code 15, grounding 35, rubric 30, selfEval 20

The code weight only counts when the answer contains code. Invalid code
scores 30, valid code 100. selfEval (1-10) is scaled ×10. The overall score
is the weighted mean rounded half up, and maps to a status:

    >= 80  verified
    >= 60  acceptable
    else   needs_review

Every check has a fallback, so validate() always returns a result.
"""

import logging
import math
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Protocol

from skooly.core.config import settings
from skooly.services.rag.generator import AnswerGenerator


logger = logging.getLogger(__name__)


WEIGHTS = {"code": 15, "grounding": 35, "rubric": 30, "selfEval": 20}

RUBRIC_WEIGHTS = {"accuracy": 30, "completeness": 25, "clarity": 20, "relevance": 25}

INVALID_CODE_SCORE = 30
RUBRIC_DEFAULT_SCORE = 75
RUBRIC_FALLBACK_SCORE = 80

MAX_STATEMENTS = 10
MAX_STATEMENTS_CHECKED = 5

STATUS_VERIFIED = "verified"
STATUS_ACCEPTABLE = "acceptable"
STATUS_NEEDS_REVIEW = "needs_review"


def round_half_up(value: float) -> int:
    """Round .5 away from zero for positive scores (2.5 → 3)."""
    return int(math.floor(value + 0.5))


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def status_for_score(score: int) -> str:
    if score >= 80:
        return STATUS_VERIFIED
    if score >= 60:
        return STATUS_ACCEPTABLE
    return STATUS_NEEDS_REVIEW


# ========================================
# Code Syntax Checks
# ========================================

CODE_BLOCK_PATTERN = re.compile(r"```(\w+)?\n([\s\S]*?)```")

_BRACKET_PAIRS = {"(": ")", "[": "]", "{": "}"}
_CLOSERS = set(_BRACKET_PAIRS.values())

_C_LIKE_NOISE = re.compile(
    r"//[^\n]*|/\*[\s\S]*?\*/|\"(?:\\.|[^\"\\\n])*\"|'(?:\\.|[^'\\\n])*'|`(?:\\.|[^`\\])*`"
)
_PYTHON_NOISE = re.compile(
    r"'''[\s\S]*?'''|\"\"\"[\s\S]*?\"\"\"|#[^\n]*|\"(?:\\.|[^\"\\\n])*\"|'(?:\\.|[^'\\\n])*'"
)
_PYTHON_BLOCK_KEYWORDS = re.compile(
    r"^(if|elif|else|for|while|def|class|try|except|finally|with)\b"
)


@dataclass
class CodeBlock:
    language: str
    code: str


def extract_code_blocks(text: str) -> List[CodeBlock]:
    return [
        CodeBlock(language=(match.group(1) or "unknown"), code=match.group(2).strip())
        for match in CODE_BLOCK_PATTERN.finditer(text or "")
    ]


def _blank_out(pattern: re.Pattern, code: str) -> str:
    # Keep newlines so reported line numbers stay correct
    return pattern.sub(lambda m: re.sub(r"[^\n]", "_", m.group(0)), code)


def _check_bracket_stack(code: str) -> List[str]:
    errors = []
    stack: List[tuple[str, int]] = []
    line = 1
    for char in code:
        if char == "\n":
            line += 1
        elif char in _BRACKET_PAIRS:
            stack.append((_BRACKET_PAIRS[char], line))
        elif char in _CLOSERS:
            if not stack:
                errors.append(f"Line {line}: unexpected '{char}'")
                return errors
            expected, opened_at = stack.pop()
            if char != expected:
                errors.append(
                    f"Line {line}: expected '{expected}' (opened on line {opened_at}) but found '{char}'"
                )
                return errors
    for expected, opened_at in stack:
        errors.append(f"Line {opened_at}: unclosed bracket, missing '{expected}'")
    return errors


def _check_bracket_counts(code: str) -> List[str]:
    errors = []
    for opener, closer in _BRACKET_PAIRS.items():
        balance = code.count(opener) - code.count(closer)
        if balance:
            errors.append(f"Unbalanced '{opener}{closer}' ({balance:+d})")
    return errors


def check_javascript(code: str) -> List[str]:
    cleaned = _blank_out(_C_LIKE_NOISE, code)
    errors = _check_bracket_stack(cleaned)
    if re.search(r"(?<![=!<>])=\s*;", cleaned):
        errors.append("Empty assignment ('= ;')")
    return errors


def check_python(code: str) -> List[str]:
    cleaned = _blank_out(_PYTHON_NOISE, code)
    errors = []
    for number, line in enumerate(cleaned.split("\n"), start=1):
        stripped = line.strip()
        if not stripped:
            continue
        keyword = _PYTHON_BLOCK_KEYWORDS.match(stripped)
        if keyword and ":" not in stripped:
            errors.append(f"Line {number}: missing ':' after '{keyword.group(1)}'")
    errors.extend(_check_bracket_counts(cleaned))
    return errors


def check_c_like(code: str) -> List[str]:
    cleaned = _blank_out(_C_LIKE_NOISE, code)
    return _check_bracket_counts(cleaned)


LANGUAGE_CHECKERS = {
    "javascript": check_javascript,
    "js": check_javascript,
    "jsx": check_javascript,
    "typescript": check_javascript,
    "ts": check_javascript,
    "tsx": check_javascript,
    "python": check_python,
    "py": check_python,
    "c": check_c_like,
    "cpp": check_c_like,
    "c++": check_c_like,
    "java": check_c_like,
    "csharp": check_c_like,
    "cs": check_c_like,
}


def check_code(text: str) -> Dict[str, Any]:
    """Syntax sanity check of every fenced code block."""
    blocks = extract_code_blocks(text)
    if not blocks:
        return {"hasCode": False, "valid": True, "errors": []}

    details = []
    errors = []
    for block in blocks:
        checker = LANGUAGE_CHECKERS.get(block.language.lower())
        block_errors = checker(block.code) if checker else []
        details.append({
            "language": block.language,
            "valid": not block_errors,
            "errors": block_errors,
        })
        errors.extend(f"{block.language}: {error}" for error in block_errors)

    return {
        "hasCode": True,
        "valid": not errors,
        "errors": errors,
        "details": details,
    }


# ========================================
# Claim Extraction
# ========================================

class ClaimExtractor:
    """Finds statements in an answer that are worth fact-checking."""

    def extract(self, text: str) -> List[str]:
        raise NotImplementedError


class RegexClaimExtractor(ClaimExtractor):
    """
    Sentence-level heuristic.

    Keeps sentences longer than 20 characters that contain a copula or
    modal verb, a definition verb, or a causal connective.
    """

    SENTENCE_SPLIT = re.compile(r"[.!?]+")
    FACTUAL_PATTERNS = [
        re.compile(r"\b(is|are|was|were|has|have|can|will|should|must)\b", re.IGNORECASE),
        re.compile(r"\b(defined as|means|refers to|consists of|includes)\b", re.IGNORECASE),
        re.compile(r"\b(therefore|because|since|thus|hence)\b", re.IGNORECASE),
    ]

    def __init__(self, min_length: int = 20, max_statements: int = MAX_STATEMENTS):
        self.min_length = min_length
        self.max_statements = max_statements

    def extract(self, text: str) -> List[str]:
        sentences = [s.strip() for s in self.SENTENCE_SPLIT.split(text or "")]
        statements = [
            s for s in sentences
            if len(s) > self.min_length and any(p.search(s) for p in self.FACTUAL_PATTERNS)
        ]
        return statements[:self.max_statements]


class GroundingSearcher(Protocol):
    async def search(
        self,
        query: str,
        limit: Optional[int] = None,
        category: Optional[str] = None,
        min_score: Optional[float] = None,
    ) -> list: ...


# ========================================
# Prompts
# ========================================

RUBRIC_PROMPT = """You are an expert academic evaluator. Rate the following AI response based on the student's query.

Query: "{query}"

Response:
"{response}"

Evaluate on these 4 criteria (0-100 score):
1. Accuracy: Is the information factually correct and precise?
2. Completeness: Does it fully answer the query with necessary details?
3. Clarity: Is it well-structured, easy to read, and clear?
4. Relevance: Is it directly addressing the user's intent?

Format EXACTLY as:
ACCURACY: [score]
COMPLETENESS: [score]
CLARITY: [score]
RELEVANCE: [score]"""

SELF_EVAL_PROMPT = """You are evaluating an AI-generated response for quality and accuracy.

Original Question: {query}

AI Response to evaluate:
{response}

Rate this response on a scale of 1-10 and provide brief feedback.
Format your response EXACTLY as:
SCORE: [1-10]
CONFIDENCE: [low/medium/high]
ISSUES: [list any potential inaccuracies or issues, or "none"]
SUGGESTION: [one improvement suggestion]"""


def _labelled_int(text: str, label: str) -> Optional[int]:
    match = re.search(rf"{label}:[ \t]*\**[ \t]*(\d+)", text, re.IGNORECASE)
    return int(match.group(1)) if match else None


def _labelled_line(text: str, label: str) -> Optional[str]:
    match = re.search(rf"{label}:[ \t]*([^\n]+)", text, re.IGNORECASE)
    return match.group(1).strip() if match else None


# ========================================
# Validator
# ========================================

class ContentValidator:
    """
    Multi-check answer validator.

    Usage:
    ------
    validator = ContentValidator(searcher=assembler, judge=AnswerGenerator(client))
    result = await validator.validate(answer, question)
    result["overallScore"], result["status"]

    Without a searcher the grounding check reports 0 with a reason; without a
    judge the rubric and self-evaluation fall back to their defaults.
    """

    def __init__(
        self,
        searcher: Optional[GroundingSearcher] = None,
        judge: Optional[AnswerGenerator] = None,
        claim_extractor: Optional[ClaimExtractor] = None,
        grounding_min_score: Optional[float] = None,
    ):
        self.searcher = searcher
        self.judge = judge
        self.claim_extractor = claim_extractor or RegexClaimExtractor()
        self.grounding_min_score = (
            grounding_min_score if grounding_min_score is not None else settings.GROUNDING_MIN_SCORE
        )

    async def validate(
        self,
        response: str,
        query: str,
        skip_grounding: bool = False,
        skip_self_eval: bool = False,
    ) -> Dict[str, Any]:
        """
        Run all checks and combine them.

        Returns:
            {"timestamp", "checks": {"code", "grounding", "rubric", "selfEval"},
             "overallScore", "status"}
        """
        response = response or ""
        checks: Dict[str, Any] = {}

        try:
            checks["code"] = check_code(response)
        except Exception as e:
            logger.error(f"Code check failed: {e}")
            checks["code"] = {"hasCode": False, "valid": True, "errors": [str(e)]}

        if skip_grounding:
            checks["grounding"] = {"score": 100, "grounded": True, "skipped": True}
        else:
            checks["grounding"] = await self.check_grounding(response)

        checks["rubric"] = await self.evaluate_rubric(response, query)

        if skip_self_eval:
            checks["selfEval"] = {"score": 7, "confidence": "medium", "skipped": True}
        else:
            checks["selfEval"] = await self.self_evaluate(response, query)

        overall = self.combine(checks)

        return {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "checks": checks,
            "overallScore": overall,
            "status": status_for_score(overall),
        }

    async def quick_validate(self, response: str, query: str) -> Dict[str, Any]:
        """Validation without the network-bound grounding and self-evaluation checks."""
        return await self.validate(response, query, skip_grounding=True, skip_self_eval=True)

    @staticmethod
    def combine(checks: Dict[str, Any]) -> int:
        """Weighted overall score; the code weight counts only when code is present."""
        weighted_sum = 0.0
        total_weight = 0

        code = checks["code"]
        if code.get("hasCode"):
            code_score = 100 if code.get("valid") else INVALID_CODE_SCORE
            weighted_sum += code_score * WEIGHTS["code"]
            total_weight += WEIGHTS["code"]

        weighted_sum += clamp(checks["grounding"]["score"], 0, 100) * WEIGHTS["grounding"]
        total_weight += WEIGHTS["grounding"]

        weighted_sum += clamp(checks["rubric"]["totalScore"], 0, 100) * WEIGHTS["rubric"]
        total_weight += WEIGHTS["rubric"]

        weighted_sum += clamp(checks["selfEval"]["score"] * 10, 0, 100) * WEIGHTS["selfEval"]
        total_weight += WEIGHTS["selfEval"]

        return int(clamp(round_half_up(weighted_sum / total_weight), 0, 100))

    # ------------------------------------------------------------------
    # Grounding
    # ------------------------------------------------------------------

    async def check_grounding(self, response: str) -> Dict[str, Any]:
        statements = self.claim_extractor.extract(response)

        if not statements:
            return {
                "score": 100,
                "grounded": True,
                "totalStatements": 0,
                "groundedStatements": 0,
                "reason": "No factual claims to verify",
            }

        if self.searcher is None:
            return {"score": 0, "grounded": False, "reason": "No search backend configured"}

        grounded_count = 0
        details = []

        try:
            for statement in statements[:MAX_STATEMENTS_CHECKED]:
                hits = await self.searcher.search(statement, limit=3)
                if self.grounding_min_score is not None:
                    hits = [hit for hit in hits if hit.score >= self.grounding_min_score]

                detail = {"statement": statement[:100], "grounded": bool(hits)}
                if hits:
                    grounded_count += 1
                    detail["source"] = getattr(hits[0], "title", None) or "Unknown"
                details.append(detail)
        except Exception as e:
            logger.error(f"Grounding check failed: {e}")
            return {"score": 0, "grounded": False, "reason": str(e)}

        score = round_half_up(grounded_count / len(statements) * 100)

        return {
            "score": score,
            "grounded": score >= 50,
            "totalStatements": len(statements),
            "groundedStatements": grounded_count,
            "details": details,
        }

    # ------------------------------------------------------------------
    # LLM judge checks
    # ------------------------------------------------------------------

    async def evaluate_rubric(self, response: str, query: str) -> Dict[str, Any]:
        try:
            if self.judge is None:
                raise RuntimeError("No judge model configured")

            text = await self.judge.generate(
                RUBRIC_PROMPT.format(query=query, response=response[:2000]),
                model=settings.GEMINI_JUDGE_MODEL,
            )

            breakdown = {}
            for criterion, weight in RUBRIC_WEIGHTS.items():
                parsed = _labelled_int(text, criterion.upper())
                score = RUBRIC_DEFAULT_SCORE if parsed is None else int(clamp(parsed, 0, 100))
                breakdown[criterion] = {"weight": weight, "score": score}

            total = sum(item["score"] * item["weight"] / 100 for item in breakdown.values())
            return {"totalScore": round_half_up(total), "breakdown": breakdown}

        except Exception as e:
            logger.warning(f"Rubric evaluation failed, using fallback: {e}")
            return {
                "totalScore": RUBRIC_FALLBACK_SCORE,
                "breakdown": {
                    criterion: {"weight": weight, "score": RUBRIC_FALLBACK_SCORE}
                    for criterion, weight in RUBRIC_WEIGHTS.items()
                },
                "fallback": True,
            }

    async def self_evaluate(self, response: str, query: str) -> Dict[str, Any]:
        try:
            if self.judge is None:
                raise RuntimeError("No judge model configured")

            text = await self.judge.generate(
                SELF_EVAL_PROMPT.format(query=query, response=response[:1500]),
                model=settings.GEMINI_JUDGE_MODEL,
            )

            score = _labelled_int(text, "SCORE")
            confidence = _labelled_line(text, "CONFIDENCE")
            issues = _labelled_line(text, "ISSUES")
            suggestion = _labelled_line(text, "SUGGESTION")

            return {
                "score": 7 if score is None else int(clamp(score, 1, 10)),
                "confidence": confidence.split()[0].strip("[]*").lower() if confidence else "medium",
                "issues": issues or "none",
                "suggestion": suggestion or "",
            }

        except Exception as e:
            logger.warning(f"Self-evaluation failed, using fallback: {e}")
            return {
                "score": 5,
                "confidence": "unknown",
                "issues": "Evaluation failed",
                "suggestion": "",
            }
