from pricescout.adapters.urls import build_search_url, encode_query

def test_encode_query():
    assert encode_query(" taladro bosch ") == "taladro%20bosch"
    assert encode_query("multímetro") == "mult%C3%ADmetro"
    assert encode_query("llave (3/4)") == "llave%20(3%2F4)"

def test_url_by_source_id(make_source):
    src = make_source("grainger-us", base_url="https://www.grainger.com/")
    assert build_search_url(src, "safety gloves") == "https://www.grainger.com/search?searchQuery=safety%20gloves"

def test_url_mercadolibre_path_style(make_source):
    src = make_source("mercadolibre-pe", base_url="https://listado.mercadolibre.com.pe")
    assert build_search_url(src, "nivel") == "https://listado.mercadolibre.com.pe/nivel"

def test_url_by_type(make_source):
    src = make_source("makita-pe", type="brand_direct", base_url="https://makita.pe")
    assert build_search_url(src, "taladro") == "https://makita.pe/search?q=taladro"

def test_url_default_template(make_source):
    src = make_source("unknown-shop-cl", base_url="https://shop.cl")
    assert build_search_url(src, "casco") == "https://shop.cl/search?q=casco"
