"""System instruction and canned replies for the traffic-law assistant.

The reply language always follows the user's message: Vietnamese when
is_vietnamese() says so, English otherwise.
"""

from collections.abc import Iterable

from backend.app.models.docs import CachedDocument, DocumentChunk
from backend.app.nlp.vietnamese import is_vietnamese

GREETING_VI = (
    "Xin chào! Tôi là trợ lý AI chuyên về luật giao thông Việt Nam. Tôi có thể giúp bạn tìm "
    "hiểu về các quy định giao thông, mức phạt vi phạm, và trả lời các câu hỏi liên quan đến "
    "luật giao thông. Bạn có câu hỏi gì về giao thông không?"
)
GREETING_EN = (
    "Hello! I'm an AI assistant specializing in Vietnamese traffic laws. I can help you learn "
    "about traffic regulations, violation fines, and answer questions related to traffic laws. "
    "Do you have any traffic-related questions?"
)

REFUSAL_VI = "Xin lỗi, tôi chỉ có thể hỗ trợ các câu hỏi liên quan đến luật giao thông Việt Nam."
REFUSAL_EN = "I'm sorry, I can only assist with questions related to Vietnamese traffic law."


def greeting_response(message: str) -> str:
    return GREETING_VI if is_vietnamese(message) else GREETING_EN


def refusal_response(message: str) -> str:
    return REFUSAL_VI if is_vietnamese(message) else REFUSAL_EN


def format_documents(documents: Iterable[CachedDocument | DocumentChunk]) -> str:
    """Render documents or chunks as reference blocks separated by blank lines."""
    blocks = []
    for item in documents:
        title = item.document_title if isinstance(item, DocumentChunk) else item.title
        blocks.append(f"Document: {title}\nContent: {item.content}")
    return "\n\n".join(blocks)


def build_system_instruction(message: str, document_content: str) -> str:
    """Build the system instruction for one chat turn.

    Args:
        message: Current user message (decides the reply language)
        document_content: Output of format_documents, may be empty

    Returns:
        Complete system instruction text
    """
    language = "VIETNAMESE" if is_vietnamese(message) else "ENGLISH"
    refusal = REFUSAL_VI if language == "VIETNAMESE" else REFUSAL_EN
    references = f"Reference Documents:\n{document_content}\n\n" if document_content else ""

    return f"""You are a helpful assistant and an expert in Vietnamese traffic law.
Explain answers clearly and in detail, citing real articles and examples from Vietnamese
traffic regulations.

LANGUAGE:
- The user wrote in {language}. Reply in {language} only.
- Never mix languages in one reply.

RESPONSE RULES:
- Do not open with greetings such as "Chào bạn," or "Hello,"; start with the answer.
- Greet only when the user's message is nothing but a greeting.
- Use the conversation history to understand follow-up questions.

LEGAL ARTICLE LOOKUPS:
- When the user asks for a specific provision (e.g. "Điều 6 Khoản 9", "Nghị định 168"),
  give the exact content of that provision, quoting it verbatim when it is in the documents.
- Always cite the full reference: Điều X Khoản Y Điểm Z of Nghị định ABC.
- Include every relevant subsection of the requested article.

PENALTIES:
- Every fine you state must cite its article, clause, point and decree.
- When several amounts exist for one violation, give the most recent and specific one.
- "Vượt đèn đỏ" (running a red light) is legally worded as "không chấp hành hiệu lệnh của
  đèn tín hiệu giao thông"; look for that wording in the documents.
- "Vượt xe" means overtaking, which is a different violation.
- Fines differ by vehicle type; say which vehicle each amount applies to.
- If the user names a specific article or clause, prioritize it.

KNOWLEDGE SOURCES:
- First use the reference documents below.
- When they lack the answer, answer from your general knowledge of Vietnamese traffic law,
  directly and confidently, without mentioning missing documents or apologizing.
- Speed limits, fines, driving age, helmets, licences and vehicle rules are all traffic-law
  questions.
- Only for questions unrelated to traffic, driving, vehicles or transport, reply exactly:
  "{refusal}"

{references}Reply in {language}."""
