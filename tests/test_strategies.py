"""Unit tests for selector strategy tables and resolution."""
import anyio
import pytest

from crm_e2e import strategies
from crm_e2e.models import InteractionKind
from crm_e2e.strategies import Strategy, css_string, first_visible, poll_first_visible, xpath_literal


class TestEscaping:
    def test_css_string_escapes_quotes_and_backslashes(self):
        assert css_string('Say "hi"') == 'Say \\"hi\\"'
        assert css_string("a\\b") == "a\\\\b"

    def test_xpath_literal_prefers_simple_quoting(self):
        assert xpath_literal("Stage") == "'Stage'"
        assert xpath_literal("Owner's Name") == '"Owner\'s Name"'

    def test_xpath_literal_uses_concat_for_mixed_quotes(self):
        literal = xpath_literal('it\'s "quoted"')
        assert literal.startswith("concat(")
        assert "\"'\"" in literal

    def test_strategy_renders_both_placeholders(self):
        strategy = Strategy("both", 'a[title="{css}"] | {xpath}')
        assert strategy.selector("Edit") == "a[title=\"Edit\"] | 'Edit'"


class TestTables:
    def test_every_kind_has_a_table(self):
        for kind in InteractionKind:
            assert strategies.strategies_for(kind)

    def test_currency_uses_text_strategies(self):
        assert strategies.strategies_for(InteractionKind.CURRENCY_AMOUNT) is strategies.TEXT_INPUT

    def test_date_strategies_fall_back_to_text_strategies(self):
        table = strategies.strategies_for(InteractionKind.DATE)
        assert table[-len(strategies.TEXT_INPUT):] == strategies.TEXT_INPUT
        assert table[0].name == "lightning-input-by-label"

    def test_strategy_names_are_unique_within_a_table(self):
        for table in (
            strategies.TEXT_INPUT,
            strategies.COMBOBOX,
            strategies.LOOKUP,
            strategies.BUTTON,
            strategies.NEW_BUTTON,
            strategies.ACTION,
            strategies.FIELD_VALUE,
        ):
            names = strategies.strategy_names(table)
            assert len(names) == len(set(names))

    def test_save_button_never_matches_save_and_new(self):
        for strategy in strategies.SAVE_BUTTON:
            assert "has-text" not in strategy.template

    def test_new_button_only_matches_the_exact_label(self):
        for strategy in strategies.NEW_BUTTON:
            assert "has-text" not in strategy.template
            assert "New" in strategy.selector()


@pytest.mark.asyncio
class TestFirstVisible:
    async def test_returns_first_matching_strategy_in_order(self, fake_page):
        table = strategies.TEXT_INPUT
        fake_page.add(table[2].selector("Amount"))
        fake_page.add(table[5].selector("Amount"))

        resolved = await first_visible(fake_page, "Amount", table, probe_timeout=10)

        assert resolved is not None
        assert resolved.strategy is table[2]
        assert resolved.selector == 'input[name="Amount"]'

    async def test_skips_hidden_matches(self, fake_page):
        table = strategies.TEXT_INPUT
        fake_page.add(table[0].selector("Amount"), visible=False)
        fake_page.add(table[1].selector("Amount"))

        resolved = await first_visible(fake_page, "Amount", table, probe_timeout=10)

        assert resolved.strategy is table[1]

    async def test_require_enabled_skips_disabled_controls(self, fake_page):
        table = strategies.BUTTON
        fake_page.add(table[0].selector("Save"), enabled=False)
        fake_page.add(table[1].selector("Save"))

        resolved = await first_visible(fake_page, "Save", table, probe_timeout=10, require_enabled=True)

        assert resolved.strategy is table[1]

    async def test_returns_none_when_nothing_matches(self, fake_page):
        assert await first_visible(fake_page, "Nope", strategies.BUTTON, probe_timeout=10) is None

    async def test_each_strategy_is_probed_once(self, fake_page):
        await first_visible(fake_page, "Nope", strategies.ACTION, probe_timeout=10)
        assert len(fake_page.waits) == len(strategies.ACTION)


@pytest.mark.asyncio
class TestPollFirstVisible:
    async def test_finds_result_that_appears_later(self, fake_page):
        table = strategies.LOOKUP_RESULT
        element = fake_page.add(table[1].selector("Acme"), visible=False)

        async def reveal():
            element.visible = True

        async with anyio.create_task_group() as tg:
            tg.start_soon(reveal)
            resolved = await poll_first_visible(fake_page, "Acme", table, timeout=200, interval=5)

        assert resolved is not None
        assert resolved.strategy is table[1]

    async def test_gives_up_after_timeout(self, fake_page):
        resolved = await poll_first_visible(fake_page, "Acme", strategies.LOOKUP_RESULT, timeout=30, interval=5)
        assert resolved is None
