"""Test doubles and sample sources shared by the test modules."""

from typing import List, Optional, Sequence

from cv_platform.llm.openai_client import ModelCallError


class FakeModelClient:
    """Scripted stand-in for the model: returns replies in order, or raises."""

    def __init__(self, replies: Optional[Sequence[str]] = None, error: Optional[Exception] = None):
        self.replies: List[str] = list(replies or [])
        self.error = error
        self.calls = []

    def complete(self, messages, system_prompt):
        self.calls.append({"messages": list(messages), "system_prompt": system_prompt})
        if self.error is not None:
            raise self.error
        if not self.replies:
            raise ModelCallError("No scripted reply left")
        return self.replies.pop(0)


HOOK_COMPONENT = """import { useState } from 'react';

export default function Hero() {
  const [open, setOpen] = useState(false);
  return (
    <section id="hero">
      <h1>Hi</h1>
    </section>
  );
}"""


CLEAN_COMPONENT = """export default function About() {
  return (
    <section id="about" className="py-24">
      <h2>About</h2>
      <a href="mailto:me@example.com">Email</a>
    </section>
  );
}"""
