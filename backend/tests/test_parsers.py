import pytest

from licensing_exams.utils.parsers import parse_file_to_questions


def test_parse_json():
    data = (b'[{"question":"Q1","optionA":"a","optionB":"b","optionC":"c","optionD":"d",'
            b'"correctAnswer":"b","explanation":"why"}]')
    res = parse_file_to_questions(data, 'questions.json')
    assert res[0]['question'] == 'Q1'
    assert res[0]['option_b'] == 'b'
    assert res[0]['correct_answer'] == 'B'
    assert res[0]['explanation'] == 'why'


def test_parse_json_options_list_and_wrapper_object():
    data = b'{"questions": [{"question_text":"Q2","options":["w","x","y","z"],"correct_answer":"D"}]}'
    res = parse_file_to_questions(data, 'bank.JSON')
    assert [res[0][k] for k in ('option_a', 'option_b', 'option_c', 'option_d')] == ['w', 'x', 'y', 'z']
    assert res[0]['explanation'] is None


def test_parse_csv():
    csv = b'Question,Option_A,Option_B,Option_C,Option_D,Correct\nWhat is X?,A1,B1,C1,D1,c\n'
    res = parse_file_to_questions(csv, 'q.csv')
    assert res[0]['question'].startswith('What')
    assert res[0]['option_d'] == 'D1'
    assert res[0]['correct_answer'] == 'C'


def test_parse_csv_missing_columns_yields_none():
    res = parse_file_to_questions(b'question\nOnly text\n', 'q.csv')
    assert res[0]['option_a'] is None
    assert res[0]['correct_answer'] is None


def test_unsupported_and_malformed_files():
    with pytest.raises(ValueError):
        parse_file_to_questions(b'whatever', 'q.txt')
    with pytest.raises(ValueError):
        parse_file_to_questions(b'{not json', 'q.json')
    with pytest.raises(ValueError):
        parse_file_to_questions(b'"a string"', 'q.json')
