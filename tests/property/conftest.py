"""Hypothesis strategies for property testing.

Provides reusable composite strategies for generating tokens, payloads and
request timings that match the access Lambda's data contracts.
"""

from hypothesis import strategies as st

# Lone surrogates cannot appear in a URL or cookie value
safe_text = st.text(
    alphabet=st.characters(blacklist_categories=("Cs",)), min_size=0, max_size=40
)

signing_secrets = st.text(
    alphabet=st.characters(min_codepoint=33, max_codepoint=126),
    min_size=16,
    max_size=64,
)

json_scalars = st.one_of(
    st.none(),
    st.booleans(),
    st.integers(min_value=-(2**53), max_value=2**53),
    safe_text,
)


@st.composite
def token_payload(draw):
    """Generate a JSON object payload as the codec accepts it.

    Returns:
        dict: Mapping of text keys to scalars or short lists of scalars
    """
    values = st.one_of(json_scalars, st.lists(json_scalars, max_size=4))
    return draw(st.dictionaries(safe_text, values, max_size=8))


@st.composite
def email_address(draw):
    """Generate a syntactically valid email, possibly padded and mixed-case.

    Returns:
        str: Address that normalize_email must accept
    """
    local_chars = st.characters(
        whitelist_categories=("Ll", "Lu", "Nd"), max_codepoint=127
    )
    local = draw(st.text(alphabet=local_chars, min_size=1, max_size=20))
    label = draw(st.text(alphabet=local_chars, min_size=1, max_size=15))
    tld = draw(st.sampled_from(["com", "io", "co.uk", "ORG"]))
    padding = draw(st.sampled_from(["", " ", "  ", "\t"]))
    return f"{padding}{local}.{draw(st.sampled_from(['x', 'Y']))}@{label}.{tld}{padding}"


request_gaps = st.lists(st.integers(min_value=0, max_value=15), min_size=1, max_size=40)
