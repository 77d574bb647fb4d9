from refshelf.search import tokenize


def test_plain_words_keep_query_order() -> None:
    tokens = tokenize("deep  learning\tmodels")
    assert [token.value for token in tokens] == ["deep", "learning", "models"]
    assert all(token.field is None and not token.is_phrase for token in tokens)


def test_quoted_phrase_is_one_token() -> None:
    tokens = tokenize('"machine   learning in medicine" 2020')
    assert tokens[0].value == "machine   learning in medicine"
    assert tokens[0].is_phrase
    assert tokens[0].raw == '"machine   learning in medicine"'
    assert tokens[1].value == "2020"


def test_field_prefix_scopes_token() -> None:
    tokens = tokenize("author:smith year:2020 doi:10.1000/abc")
    assert [(token.field, token.value) for token in tokens] == [
        ("author", "smith"),
        ("year", "2020"),
        ("doi", "10.1000/abc"),
    ]
    assert tokens[0].raw == "author:smith"


def test_field_prefix_with_quoted_phrase() -> None:
    (token,) = tokenize('title:"deep learning"')
    assert token.field == "title"
    assert token.value == "deep learning"
    assert token.is_phrase


def test_url_value_keeps_its_colons() -> None:
    (token,) = tokenize("url:https://example.org/paper")
    assert token.field == "url"
    assert token.value == "https://example.org/paper"


def test_unknown_prefix_is_literal_text() -> None:
    (token,) = tokenize("journal:nature")
    assert token.field is None
    assert token.value == "journal:nature"


def test_empty_and_whitespace_queries_have_no_tokens() -> None:
    assert tokenize("") == []
    assert tokenize("   \t ") == []


def test_field_without_value_is_dropped() -> None:
    tokens = tokenize("author: smith")
    assert [(token.field, token.value) for token in tokens] == [(None, "smith")]


def test_empty_quotes_produce_no_token() -> None:
    assert [token.value for token in tokenize('"" cells')] == ["cells"]


def test_unclosed_quote_falls_back_to_word() -> None:
    tokens = tokenize('"open ended')
    assert [token.value for token in tokens] == ['"open', "ended"]
    assert not tokens[0].is_phrase


def test_unclosed_quote_after_field_is_not_a_scope() -> None:
    tokens = tokenize('title:"open ended')
    assert tokens[0].field is None
    assert tokens[0].value == "title:"


def test_word_stops_at_quote() -> None:
    tokens = tokenize('cancer"risk factors"')
    assert [token.value for token in tokens] == ["cancer", "risk factors"]
    assert tokens[1].is_phrase
