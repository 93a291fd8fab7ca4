from api_mcp_agent.generator.extract import extract_code, split_sections


class TestExtractCode:
    def test_tagged_block(self):
        text = "Intro\n```typescript\nconst a = 1;\n```\nOutro"
        assert extract_code(text, "typescript") == "const a = 1;"

    def test_alias_tag(self):
        assert extract_code("```ts\nconst a = 1;\n```", "typescript") == "const a = 1;"

    def test_prefers_matching_tag_over_first_block(self):
        text = "```bash\nnpm i\n```\n```json\n{\"a\": 1}\n```"
        assert extract_code(text, "json") == '{"a": 1}'

    def test_first_block_fallback(self):
        assert extract_code("```\nplain\n```", "typescript") == "plain"

    def test_raw_text_fallback(self):
        assert extract_code("  const a = 1;  ", "typescript") == "const a = 1;"

    def test_markdown_document_unwrapped_whole(self):
        text = "```markdown\n# Title\n\n```bash\nnpm start\n```\n\nMore text\n```"
        assert extract_code(text, "markdown", any_block=False) == "# Title\n\n```bash\nnpm start\n```\n\nMore text"

    def test_markdown_without_fence_kept_raw(self):
        text = "# Title\n\n```bash\nnpm start\n```"
        assert extract_code(text, "markdown", any_block=False) == text


class TestSplitSections:
    def test_splits_on_level_two_headings(self):
        sections = split_sections("preamble\n## One\nfirst\n## Two\nsecond\n")
        assert sections == {"One": "first", "Two": "second"}

    def test_headings_inside_fences_ignored(self):
        text = "## README.md\n```markdown\n# T\n\n## Usage\nrun it\n```\n## Main Server\n```ts\nx\n```"
        sections = split_sections(text)
        assert list(sections) == ["README.md", "Main Server"]
        assert "## Usage" in sections["README.md"]

    def test_no_headings(self):
        assert split_sections("just code") == {}
