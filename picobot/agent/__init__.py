"""Agent core: messages, mailbox, scheduler, generation rounds and tools."""
