"""Feedback texts shown after a decision and at the end of a pass."""
from smishdefense.models.training_models import Action, Feedback, FeedbackKind, MessageItem

DEFAULT_QUESTION_TEXT = "Look carefully at this message. Key indicators: "


def _bullets(cues) -> str:
    return "\n• " + "\n• ".join(cues)


def question_feedback(item: MessageItem) -> Feedback:
    """Analysis shown when the user asks about a message before deciding."""
    text = item.question_feedback or DEFAULT_QUESTION_TEXT
    if item.cues:
        text += "\n" + "\n".join(f"{i}. {cue}" for i, cue in enumerate(item.cues, start=1))
    return Feedback(
        kind=FeedbackKind.QUESTION,
        item=item,
        action=Action.QUESTION,
        title="Analysis",
        text=text,
        cues=list(item.cues),
    )


def correct_feedback(item: MessageItem, action: Action) -> Feedback:
    if item.correct_action == Action.BLOCK:
        text = "Good catch! This was indeed a suspicious message."
    else:
        text = "Well done! This was a legitimate message."
    if item.cues:
        text += "\n\nKey indicators:" + _bullets(item.cues)
    return Feedback(
        kind=FeedbackKind.CORRECT,
        item=item,
        action=action,
        title="Correct!",
        text=text,
        cues=list(item.cues),
    )


def incorrect_feedback(item: MessageItem, action: Action) -> Feedback:
    # Per-action text from the catalog wins over the generic explanation
    text = item.incorrect_feedback.get(action.value)
    if not text:
        if item.correct_action == Action.BLOCK:
            text = "This message was actually suspicious and should have been blocked."
        else:
            text = "This was actually a legitimate message."
    if item.cues:
        text += "\n\nWatch for:" + _bullets(item.cues)
    return Feedback(
        kind=FeedbackKind.INCORRECT,
        item=item,
        action=action,
        title="Not Quite",
        text=text,
        cues=list(item.cues),
    )


def build_feedback(item: MessageItem, action: Action) -> Feedback:
    """Feedback for a decision on an item."""
    verdict = item.classify(action)
    if verdict is None:
        return question_feedback(item)
    if verdict:
        return correct_feedback(item, action)
    return incorrect_feedback(item, action)


def performance_message(percentage: int) -> str:
    """Closing remark for a completed training pass."""
    if percentage == 100:
        return "🌟 Perfect score! You have excellent smishing detection skills!"
    elif percentage >= 70:
        return "👍 Great job! You caught most of the threats."
    elif percentage >= 50:
        return "📚 Good effort! Review the feedback to improve your detection skills."
    else:
        return "⚠️ Keep practicing! Pay close attention to the warning signs."


def progress_remark(accuracy: int, completed: int, total: int) -> str:
    """Remark under the menu statistics."""
    if accuracy == 100 and completed == total:
        return "🌟 Perfect score! You're a smishing detection expert!"
    elif accuracy >= 80:
        return "🎯 Great work! Keep it up!"
    elif accuracy >= 60:
        return "👍 Good progress! Review the feedback to improve."
    elif completed > 0:
        return "📚 Keep practicing! Pay attention to the warning signs."
    else:
        return "🚀 Ready to start? Pick any message to begin!"
