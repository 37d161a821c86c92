"""CSV importer parsing and dry run."""
import importer

HEADER = "ID,Prova,Matéria,Questão,Enunciado,AlternativaA,AlternativaB,AlternativaC,AlternativaD,Gabarito,Fonte_documento\n"


def write_csv(tmp_path, body, header=HEADER):
    path = tmp_path / "questoes.csv"
    path.write_text(header + body, encoding="utf-8")
    return path


def test_parse_row_maps_canonical_columns():
    row = importer.parse_row({
        "ID": " 10 ", "Prova": "OAB", "Matéria": "Direito Penal", "Questão": "1",
        "Enunciado": "Qual crime?", "AlternativaA": "a", "AlternativaB": "b",
        "AlternativaC": "c", "AlternativaD": "d", "Gabarito": "b", "Fonte_documento": "FGV",
    })
    assert row["ID"] == 10
    assert row["Gabarito"] == "B"
    assert row["Matéria"] == "Direito Penal"
    assert row["AlternativaD"] == "d"


def test_parse_row_accepts_synonym_headers():
    row = importer.parse_row({
        "id": "11", "prova": "TJ-SP", "materia": "Português", "enunciado": "Crase?",
        "Alternativa_a": "a", "Alternativa_b": "b", "Alternativa_c": "c", "Alternativa_d": "d",
        "gabarito": "A", "fonte_documento": "VUNESP",
    })
    assert row["ID"] == 11
    assert row["Prova"] == "TJ-SP"
    assert row["Fonte_documento"] == "VUNESP"
    assert row["Questão"] is None


def test_invalid_rows_are_skipped():
    base = {
        "ID": "1", "Enunciado": "x", "AlternativaA": "a", "AlternativaB": "b",
        "AlternativaC": "c", "AlternativaD": "d", "Gabarito": "A",
    }
    assert importer.parse_row(dict(base, ID="abc")) is None
    assert importer.parse_row(dict(base, Gabarito="E")) is None
    assert importer.parse_row(dict(base, AlternativaD="")) is None
    assert importer.parse_row(dict(base, Enunciado=" ")) is None
    assert importer.parse_row(base) is not None


def test_dry_run_counts_valid_rows(tmp_path, capsys):
    path = write_csv(
        tmp_path,
        '1,OAB,Direito Penal,1,"Enunciado, com vírgula",a,b,c,d,A,FGV\n'
        "2,OAB,Direito Penal,2,Outro,a,b,c,d,Z,FGV\n"
        "3,TJ-SP,Português,3,Mais um,a,b,c,d,d,VUNESP\n",
    )
    assert importer.run_import(csv_path=path, dry_run=True) == 2
    out = capsys.readouterr().out
    assert "would upsert 2 questions" in out


def test_bom_header_is_handled(tmp_path):
    path = tmp_path / "bom.csv"
    path.write_text(HEADER + "5,OAB,Direito Civil,5,Texto,a,b,c,d,C,FGV\n", encoding="utf-8-sig")
    rows = list(importer.load_and_transform(path))
    assert [r["ID"] for r in rows] == [5]
