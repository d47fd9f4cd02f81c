from stockledger.services import document_service


def test_sequences_are_independent(db_session):
    assert document_service.next_document_number("sales", "S") == (1, "S-000001")
    assert document_service.next_document_number("sales", "S") == (2, "S-000002")
    assert document_service.next_document_number("procurements", "PO") == (1, "PO-000001")
    db_session.commit()

    assert document_service.next_sequence_value("sales") == 3


def test_rolled_back_allocation_is_reused(db_session):
    document_service.next_sequence_value("stockAudits")
    db_session.rollback()

    assert document_service.next_sequence_value("stockAudits") == 1
