from anthropic import Anthropic

SYSTEM_PROMPT = """You are a helpful assistant for the billing team.
Answer briefly and cite invoice numbers."""

client = Anthropic()


def ask(question):
    # legacy path used anthropic.messages.create( through a wrapper
    response = client.messages.create(
        model="claude-3-haiku-20240307",
        max_tokens=512,
        system=SYSTEM_PROMPT,
        messages=[{"role": "user", "content": question}],
    )
    return response.content[0].text
